from app.core.llm.providers.openai import OpenAIProvider

XAI_BASE_URL = "https://api.x.ai/v1"


class XaiProvider(OpenAIProvider):
    def __init__(self, api_key: str, model: str, base_url: str | None = None, timeout: float | None = None):
        super().__init__(api_key=api_key, model=model, base_url=base_url or XAI_BASE_URL, timeout=timeout)
