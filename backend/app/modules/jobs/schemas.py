from pydantic import BaseModel, Field


class CreateJobRequest(BaseModel):
    type: str = "si"
    params: dict = Field(default_factory=dict)


class PatchJobRequest(BaseModel):
    status: str | None = None
    result: dict | None = None
