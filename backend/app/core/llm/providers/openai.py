from openai import OpenAI

from app.core.llm.base import BaseLLM
from app.core.llm.schemas import GenerateConfig, LLMResponse


class OpenAIProvider(BaseLLM):
    """Chat completions over the OpenAI SDK; any compatible API works through ``base_url``."""

    def __init__(self, api_key: str, model: str, base_url: str | None = None, timeout: float | None = None):
        client_kwargs: dict = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url
        if timeout:
            client_kwargs["timeout"] = timeout
        self._client = OpenAI(**client_kwargs)
        self._model = model

    def _build_params(self, messages: list[dict], config: GenerateConfig) -> dict:
        params = {
            "model": self._model,
            "messages": messages,
            "temperature": config.temperature,
            "top_p": config.top_p,
        }
        if config.max_tokens is not None:
            params["max_tokens"] = config.max_tokens
        if config.stop is not None:
            params["stop"] = config.stop
        return params

    def generate(self, messages: list[dict], config: GenerateConfig | None = None) -> LLMResponse:
        config = config or GenerateConfig()

        response = self._client.chat.completions.create(
            **self._build_params(messages, config),
        )
        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return LLMResponse(text=response.choices[0].message.content or "", usage=usage)
