import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.config import settings
from app.core.database import app_engine
from app.core.errors import LedgerConflictError
from app.modules.credits.models import CreditBalance, CreditTransaction

logger = logging.getLogger(__name__)

CREDIT_QUANTUM = Decimal("0.001")


def quantize_credits(value) -> Decimal:
    """Round to three decimals and floor at zero."""
    amount = Decimal(str(value)).quantize(CREDIT_QUANTUM, rounding=ROUND_HALF_UP)
    return max(amount, Decimal("0.000"))


class CreditLedger:
    """Per-identity credit balances.

    Every write is a compare-and-swap on ``CreditBalance.version``: the row is
    read, the new value computed, and the update only lands if nobody else
    bumped the version in between. A first write is an INSERT, which the
    primary key makes exclusive. Losers re-read and try again.
    """

    def __init__(self, engine=app_engine, max_attempts: int | None = None):
        self.engine = engine
        self.max_attempts = max_attempts or settings.LEDGER_MAX_WRITE_ATTEMPTS

    @staticmethod
    def _balance_to_dict(identity: str, balance: Decimal, updated_at: float | None) -> dict:
        return {
            "identity": identity,
            "balance_credits": float(balance),
            "updated_at": float(updated_at) if updated_at is not None else None,
        }

    @staticmethod
    def _transaction_to_dict(txn: CreditTransaction) -> dict:
        return {
            "id": txn.id,
            "identity": txn.identity,
            "amount_credits": float(txn.amount_credits),
            "balance_after": float(txn.balance_after),
            "reason": txn.reason,
            "meta": txn.meta or {},
            "created_at": float(txn.created_at),
        }

    def get_balance(self, identity: str) -> dict:
        with Session(self.engine) as session:
            row = session.get(CreditBalance, identity)
            if row is None:
                return self._balance_to_dict(identity, Decimal("0"), None)
            return self._balance_to_dict(identity, Decimal(row.balance_credits), row.updated_at)

    def adjust_balance(self, identity: str, delta, reason: str = "adjust", meta: dict | None = None) -> dict:
        delta = Decimal(str(delta))
        return self._write(identity, lambda old: old + delta, reason, meta)

    def set_balance(self, identity: str, value, reason: str = "admin_set", meta: dict | None = None) -> dict:
        target = Decimal(str(value))
        return self._write(identity, lambda _old: target, reason, meta)

    def list_transactions(self, identity: str, limit: int = 50) -> list[dict]:
        safe_limit = max(1, min(int(limit), 500))
        with Session(self.engine) as session:
            rows = session.exec(
                select(CreditTransaction)
                .where(CreditTransaction.identity == identity)
                .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
                .limit(safe_limit)
            ).all()
            return [self._transaction_to_dict(row) for row in rows]

    def _write(
        self,
        identity: str,
        compute: Callable[[Decimal], Decimal],
        reason: str,
        meta: dict | None,
    ) -> dict:
        for attempt in range(1, self.max_attempts + 1):
            with Session(self.engine) as session:
                row = session.get(CreditBalance, identity)
                old = Decimal(row.balance_credits) if row is not None else Decimal("0")
                new = quantize_credits(compute(old))
                now = time.time()

                if row is None:
                    session.add(
                        CreditBalance(identity=identity, balance_credits=new, version=1, updated_at=now)
                    )
                else:
                    result = session.exec(
                        update(CreditBalance)
                        .where(CreditBalance.identity == identity)
                        .where(CreditBalance.version == row.version)
                        .values(balance_credits=new, version=row.version + 1, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        session.rollback()
                        logger.info("Balance write for %s lost a race (attempt %d)", identity, attempt)
                        continue

                session.add(
                    CreditTransaction(
                        identity=identity,
                        amount_credits=new - old,
                        balance_after=new,
                        reason=reason,
                        meta=meta or {},
                        created_at=now,
                    )
                )
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.info("Balance insert for %s lost a race (attempt %d)", identity, attempt)
                    continue

                return self._balance_to_dict(identity, new, now)

        raise LedgerConflictError(
            f"Could not update balance for {identity} after {self.max_attempts} attempts"
        )
