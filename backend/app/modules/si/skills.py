"""Skill prompt templates and completion request assembly."""

import re

from app.core.errors import InvalidRequestError
from app.core.llm.schemas import CompletionRequest

DEFAULT_SKILL = "general"
DEGRADED_PREFIX = "[DEGRADED:LLM] Unable to reach model. Showing a concise extract:"
DEGRADED_EXTRACT_CHARS = 240
MAX_INPUT_CHARS = 32_000

SKILLS: list[dict[str, str]] = [
    {
        "slug": "general",
        "name": "General",
        "description": "Concise general-purpose assistant.",
        "content": 'You are a helpful assistant. Skill="{skill}". Keep replies concise.',
    },
    {
        "slug": "summarize",
        "name": "Summarize",
        "description": "Five-bullet summary of the input.",
        "content": "You are a precise summarizer. Output 5 crisp bullets only.",
    },
    {
        "slug": "explain",
        "name": "Explain",
        "description": "Plain-language explanation.",
        "content": "Explain simply for a smart 12-year-old. Use short sentences.",
    },
    {
        "slug": "action_items",
        "name": "Action items",
        "description": "Ordered, actionable task list.",
        "content": "Extract ordered, actionable tasks. Start each with a verb. Include owners if present.",
    },
    {
        "slug": "translate",
        "name": "Translate",
        "description": "Translation; pass extras.to for the target language.",
        "content": "Translate to the requested language. Keep meaning; no extra commentary.",
    },
    {
        "slug": "rag_lite",
        "name": "RAG lite",
        "description": "Short grounded answer that flags missing information.",
        "content": "Answer concisely. If unsure, say what info is needed. Avoid speculation.",
    },
    {
        "slug": "voice_reply",
        "name": "Voice reply",
        "description": "Short spoken-style answer.",
        "content": "Compose a short spoken-style answer (2-4 sentences).",
    },
]

_SKILLS_BY_SLUG = {skill["slug"]: skill for skill in SKILLS}


def list_skills() -> list[dict[str, str]]:
    return [{key: skill[key] for key in ("slug", "name", "description")} for skill in SKILLS]


def system_prompt_for(skill: str, extras: dict | None = None) -> str:
    skill = (skill or DEFAULT_SKILL).strip().lower()
    template = _SKILLS_BY_SLUG.get(skill)
    if template is None:
        raise InvalidRequestError(f"Unknown skill '{skill}'", code="unknown_skill")

    if skill == "translate":
        target = str((extras or {}).get("to") or "").strip()[:20]
        if target:
            return f"Translate into {target}. Keep meaning; no extra commentary."
    return template["content"].format(skill=skill)


def build_completion_request(params: dict) -> CompletionRequest:
    """Turn ask/job parameters into a completion request.

    Accepts either ``{skill, input, extras}`` or a raw ``{prompt, system}``.
    """
    prompt = str(params.get("prompt") or params.get("input") or "").strip()
    if not prompt:
        raise InvalidRequestError("input is required", code="missing_input")
    if len(prompt) > MAX_INPUT_CHARS:
        raise InvalidRequestError("input is too long", code="input_too_long")

    if "prompt" in params:
        system = str(params.get("system") or "")
    else:
        system = system_prompt_for(params.get("skill") or DEFAULT_SKILL, params.get("extras"))

    options = {
        key: params[key]
        for key in ("max_tokens", "temperature")
        if params.get(key) is not None
    }
    return CompletionRequest(prompt=prompt, system=system, **options)


def degraded_text(text: str) -> str:
    extract = re.sub(r"\s+", " ", text or "").strip()[:DEGRADED_EXTRACT_CHARS]
    return f"{DEGRADED_PREFIX}\n{extract}"
