from typing import Dict, Tuple

from app.core.config import settings
from app.core.llm.base import BaseLLM
from app.core.llm.providers.anthropic import AnthropicProvider
from app.core.llm.providers.google import GoogleProvider
from app.core.llm.providers.groq import GroqProvider
from app.core.llm.providers.http import HttpProvider
from app.core.llm.providers.openai import OpenAIProvider
from app.core.llm.providers.xai import XaiProvider
from app.core.llm.schemas import ProviderDescriptor


PROVIDER_ALIASES = {
    "grok": "xai",
    "gemini": "google",
    "claude": "anthropic",
}

LLM_REGISTRY: Dict[str, type[BaseLLM]] = {
    "openai": OpenAIProvider,
    "groq": GroqProvider,
    "xai": XaiProvider,
    "google": GoogleProvider,
    "anthropic": AnthropicProvider,
    "http": HttpProvider,
}

# Kinds that can run without a credential
CREDENTIAL_OPTIONAL_KINDS = {"http"}

PROVIDER_CONFIG: Dict[str, dict[str, str]] = {
    "groq": {
        "kind": "groq",
        "api_key_attr": "GROQ_API_KEY",
        "model_attr": "GROQ_MODEL",
        "base_url_attr": "GROQ_BASE_URL",
    },
    "openai": {
        "kind": "openai",
        "api_key_attr": "OPENAI_API_KEY",
        "model_attr": "OPENAI_MODEL",
        "base_url_attr": "OPENAI_BASE_URL",
    },
    "xai": {
        "kind": "xai",
        "api_key_attr": "XAI_API_KEY",
        "model_attr": "XAI_MODEL",
        "base_url_attr": "XAI_BASE_URL",
    },
    "anthropic": {
        "kind": "anthropic",
        "api_key_attr": "ANTHROPIC_API_KEY",
        "model_attr": "ANTHROPIC_MODEL",
    },
    "google": {
        "kind": "google",
        "api_key_attr": "GOOGLE_API_KEY",
        "model_attr": "GOOGLE_MODEL",
    },
    "local": {
        "kind": "http",
        "model_attr": "LOCAL_LLM_MODEL",
        "base_url_attr": "LOCAL_LLM_BASE_URL",
    },
}


def normalize_provider_name(name: str) -> str:
    name = (name or "").strip().lower()
    return PROVIDER_ALIASES.get(name, name)


def _setting(attr: str | None) -> str:
    if not attr:
        return ""
    return str(getattr(settings, attr, "") or "").strip()


def describe_provider(name: str) -> ProviderDescriptor | None:
    """Build the descriptor for a configured provider name, or None when unknown."""
    name = normalize_provider_name(name)
    cfg = PROVIDER_CONFIG.get(name)
    if cfg is None:
        return None
    return ProviderDescriptor(
        name=name,
        kind=cfg["kind"],
        model=_setting(cfg.get("model_attr")),
        base_url=_setting(cfg.get("base_url_attr")),
        credential=_setting(cfg.get("api_key_attr")),
    )


def list_provider_names() -> list[str]:
    return [normalize_provider_name(name) for name in settings.provider_order]


# cache instance per (kind, model, base_url)
_instances: Dict[Tuple[str, str, str], BaseLLM] = {}


def create_llm(descriptor: ProviderDescriptor, use_cache: bool = True) -> BaseLLM:
    if descriptor.kind not in LLM_REGISTRY:
        raise ValueError(f"Unsupported LLM provider kind: {descriptor.kind}")
    if not descriptor.credential and descriptor.kind not in CREDENTIAL_OPTIONAL_KINDS:
        attr = PROVIDER_CONFIG.get(descriptor.name, {}).get("api_key_attr", "")
        hint = f" Set {attr} in env." if attr else ""
        raise ValueError(f"Missing API key for provider '{descriptor.name}'.{hint}")
    if not descriptor.model:
        raise ValueError(f"No model configured for provider '{descriptor.name}'.")

    key = (descriptor.kind, descriptor.model, descriptor.base_url)
    if use_cache and key in _instances:
        return _instances[key]

    llm_class = LLM_REGISTRY[descriptor.kind]
    instance = llm_class(
        api_key=descriptor.credential,
        model=descriptor.model,
        base_url=descriptor.base_url or None,
        timeout=settings.LLM_REQUEST_TIMEOUT_SECONDS,
    )

    if use_cache:
        _instances[key] = instance

    return instance


def clear_llm_cache() -> None:
    """Clear cached LLM instances so next call picks up new config."""
    _instances.clear()


def get_provider_router():
    from app.core.llm.router import ProviderRouter

    return ProviderRouter.from_settings()
