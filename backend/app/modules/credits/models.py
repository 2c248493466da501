import time
import uuid
from decimal import Decimal

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class CreditBalance(SQLModel, table=True):
    __tablename__ = "credit_balances"

    identity: str = Field(primary_key=True)
    balance_credits: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=3)
    version: int = Field(default=0)
    updated_at: float = Field(default_factory=time.time)


class CreditTransaction(SQLModel, table=True):
    __tablename__ = "credit_transactions"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True)
    identity: str = Field(index=True)
    amount_credits: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=3)
    balance_after: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=3)
    reason: str = ""
    meta: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: float = Field(default_factory=time.time, index=True)
