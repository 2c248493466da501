import logging
from typing import Callable

from app.core.errors import AllProvidersFailedError
from app.core.llm.base import BaseLLM
from app.core.llm.schemas import CompletionRequest, CompletionResult, ProviderDescriptor
from app.core.llm.service import create_llm, describe_provider, list_provider_names, normalize_provider_name
from app.modules.billing.pricing import estimate_tokens

logger = logging.getLogger(__name__)


class Provider:
    """One named backend bound to a model."""

    def __init__(self, name: str, model: str, llm: BaseLLM):
        self.name = name
        self.model = model
        self.llm = llm

    def call(self, request: CompletionRequest) -> CompletionResult:
        response = self.llm.generate(request.to_messages(), request.to_config())
        text = (response.text or "").strip()
        if not text:
            raise ValueError("empty completion")

        usage = response.usage or {}
        tokens_in = usage.get("prompt_tokens")
        tokens_out = usage.get("completion_tokens")
        return CompletionResult(
            text=text,
            provider=self.name,
            model=self.model,
            tokens_in=tokens_in if isinstance(tokens_in, int) else estimate_tokens(request.system + request.prompt),
            tokens_out=tokens_out if isinstance(tokens_out, int) else estimate_tokens(text),
        )


class ProviderRouter:
    def __init__(
        self,
        provider_names: list[str],
        describe: Callable[[str], ProviderDescriptor | None] = describe_provider,
        factory: Callable[[ProviderDescriptor], BaseLLM] = create_llm,
    ):
        self.provider_names = [normalize_provider_name(name) for name in provider_names]
        self._describe = describe
        self._factory = factory

    @classmethod
    def from_settings(cls) -> "ProviderRouter":
        return cls(list_provider_names())

    def candidates(self, requested: str | None = None) -> list[str]:
        requested = normalize_provider_name(requested or "")
        ordered = [requested] if requested else []
        ordered += [name for name in self.provider_names if name != requested]
        return ordered

    def _provider(self, name: str) -> Provider:
        descriptor = self._describe(name)
        if descriptor is None:
            raise ValueError(f"unknown provider '{name}'")
        return Provider(name=descriptor.name, model=descriptor.model, llm=self._factory(descriptor))

    def complete(self, request: CompletionRequest, provider: str | None = None) -> CompletionResult:
        failures: list[tuple[str, str]] = []

        for name in self.candidates(provider):
            try:
                result = self._provider(name).call(request)
            except Exception as exc:  # noqa: BLE001
                reason = str(exc) or type(exc).__name__
                logger.warning("Provider %s failed: %s", name, reason)
                failures.append((name, reason))
                continue

            if failures:
                logger.info("Provider %s succeeded after %d failure(s)", name, len(failures))
            return result

        raise AllProvidersFailedError(failures)
