from anthropic import Anthropic

from app.core.llm.base import BaseLLM
from app.core.llm.schemas import GenerateConfig, LLMResponse


class AnthropicProvider(BaseLLM):
    def __init__(self, api_key: str, model: str, base_url: str | None = None, timeout: float | None = None):
        client_kwargs: dict = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url
        if timeout:
            client_kwargs["timeout"] = timeout
        self._client = Anthropic(**client_kwargs)
        self._model = model

    def _split_messages(self, messages: list[dict]) -> tuple[str | None, list[dict]]:
        system_parts: list[str] = []
        history: list[dict] = []

        for message in messages:
            role = message.get("role")
            content = message.get("content", "")
            if role == "system":
                if content:
                    system_parts.append(str(content))
                continue
            history.append({
                "role": "assistant" if role == "assistant" else "user",
                "content": str(content),
            })

        system_text = "\n\n".join(system_parts) if system_parts else None
        return system_text, history

    def _build_params(self, config: GenerateConfig) -> dict:
        # the Messages API rejects temperature and top_p set together on newer models
        params: dict = {
            "temperature": config.temperature,
            "max_tokens": config.max_tokens or 1024,
        }
        if config.stop is not None:
            params["stop_sequences"] = config.stop
        return params

    def generate(self, messages: list[dict], config: GenerateConfig | None = None) -> LLMResponse:
        config = config or GenerateConfig()
        system_text, history = self._split_messages(messages)

        request: dict = {"model": self._model, "messages": history, **self._build_params(config)}
        if system_text:
            request["system"] = system_text
        response = self._client.messages.create(**request)

        text = "".join(
            block.text for block in response.content if getattr(block, "text", None)
        )

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }

        return LLMResponse(text=text, usage=usage)
