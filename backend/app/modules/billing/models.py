import time
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class UsageEvent(SQLModel, table=True):
    __tablename__ = "usage_events"

    # {reverse_ts:020d}:{id}; ascending key order is newest first
    key: str = Field(primary_key=True)
    id: str = Field(default_factory=lambda: uuid.uuid4().hex, index=True)
    identity: str = Field(index=True)
    route: str = Field(index=True)
    provider: str = ""
    model: str = ""

    tokens_in: int = 0
    tokens_out: int = 0
    cost_credits: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=3)

    billing_key: Optional[str] = Field(default=None, unique=True)
    meta: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: float = Field(default_factory=time.time, index=True)
