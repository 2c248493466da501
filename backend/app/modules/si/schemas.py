from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    skill: str = "general"
    input: str = ""
    extras: dict = Field(default_factory=dict)
    provider: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
