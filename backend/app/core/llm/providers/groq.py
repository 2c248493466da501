from app.core.llm.providers.openai import OpenAIProvider

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GroqProvider(OpenAIProvider):
    def __init__(self, api_key: str, model: str, base_url: str | None = None, timeout: float | None = None):
        super().__init__(api_key=api_key, model=model, base_url=base_url or GROQ_BASE_URL, timeout=timeout)
