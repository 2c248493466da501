from pydantic import BaseModel, ConfigDict, Field


class AdjustCreditsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = ""
    set_value: float | None = Field(default=None, alias="set", allow_inf_nan=False)
    delta: float | None = Field(default=None, allow_inf_nan=False)
    reason: str = ""
