from pydantic import BaseModel, Field, field_validator

MAX_COMPLETION_TOKENS = 2048


class GenerateConfig(BaseModel):
    temperature: float = 1.0
    max_tokens: int | None = None
    top_p: float = 1.0
    stop: list[str] | None = None


class LLMResponse(BaseModel):
    text: str
    usage: dict


class ProviderDescriptor(BaseModel):
    name: str
    kind: str
    model: str
    base_url: str = ""
    credential: str = Field(default="", repr=False)


class CompletionRequest(BaseModel):
    prompt: str
    system: str = ""
    max_tokens: int = 512
    temperature: float = 0.2

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _clamp_max_tokens(cls, value):
        return max(1, min(int(value or 1), MAX_COMPLETION_TOKENS))

    @field_validator("temperature", mode="before")
    @classmethod
    def _clamp_temperature(cls, value):
        return max(0.0, min(float(value if value is not None else 0.2), 1.0))

    def to_messages(self) -> list[dict]:
        messages = []
        if self.system:
            messages.append({"role": "system", "content": self.system})
        messages.append({"role": "user", "content": self.prompt})
        return messages

    def to_config(self) -> GenerateConfig:
        return GenerateConfig(temperature=self.temperature, max_tokens=self.max_tokens)


class CompletionResult(BaseModel):
    text: str
    provider: str
    model: str
    tokens_in: int = 0
    tokens_out: int = 0
