import httpx

from app.core.llm.base import BaseLLM
from app.core.llm.schemas import GenerateConfig, LLMResponse

COMPLETE_PATH = "/api/v1/llm/complete"


class HttpProvider(BaseLLM):
    """Generic completion endpoint speaking ``{prompt, system, max_tokens, temperature}``."""

    def __init__(self, api_key: str, model: str, base_url: str | None = None, timeout: float | None = None):
        if not base_url:
            raise ValueError("HTTP provider requires a base URL")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout or 60.0,
        )
        self._model = model

    @staticmethod
    def _build_payload(messages: list[dict], config: GenerateConfig) -> dict:
        system = "\n\n".join(
            str(m.get("content", "")) for m in messages if m.get("role") == "system"
        )
        prompt = "\n\n".join(
            str(m.get("content", "")) for m in messages if m.get("role") != "system"
        )
        payload: dict = {
            "prompt": prompt,
            "system": system,
            "temperature": config.temperature,
        }
        if config.max_tokens is not None:
            payload["max_tokens"] = config.max_tokens
        return payload

    @staticmethod
    def _extract_text(body: dict) -> str:
        if isinstance(body.get("text"), str):
            return body["text"]
        choices = body.get("choices") or []
        if choices:
            return ((choices[0] or {}).get("message") or {}).get("content") or ""
        return ""

    def generate(self, messages: list[dict], config: GenerateConfig | None = None) -> LLMResponse:
        config = config or GenerateConfig()
        response = self._client.post(COMPLETE_PATH, json=self._build_payload(messages, config))
        response.raise_for_status()
        body = response.json()

        text = self._extract_text(body)
        if not text:
            raise ValueError("empty completion from HTTP provider")

        usage = body.get("usage") or {}
        return LLMResponse(
            text=text,
            usage={
                key: usage[key]
                for key in ("prompt_tokens", "completion_tokens", "total_tokens")
                if isinstance(usage.get(key), int)
            },
        )
