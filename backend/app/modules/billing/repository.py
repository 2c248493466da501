import logging
import threading
import time
import uuid
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from app.core.database import app_engine
from app.modules.billing.models import UsageEvent

logger = logging.getLogger(__name__)

REVERSE_TS_BASE = 10**20
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

_key_lock = threading.Lock()
_last_created_ns = 0


def _next_created_ns(created_at: float | None) -> int:
    """Nanosecond timestamp, strictly increasing within this process when not given."""
    global _last_created_ns
    if created_at is not None:
        return int(created_at * 1_000_000_000)

    with _key_lock:
        now_ns = time.time_ns()
        if now_ns <= _last_created_ns:
            now_ns = _last_created_ns + 1
        _last_created_ns = now_ns
        return now_ns


def usage_key(created_ns: int, event_id: str) -> str:
    return f"{REVERSE_TS_BASE - created_ns:020d}:{event_id}"


class UsageRecorder:
    def __init__(self, engine=app_engine):
        self.engine = engine

    @staticmethod
    def _event_to_dict(event: UsageEvent) -> dict:
        return {
            "key": event.key,
            "id": event.id,
            "identity": event.identity,
            "route": event.route,
            "provider": event.provider,
            "model": event.model,
            "tokens_in": int(event.tokens_in),
            "tokens_out": int(event.tokens_out),
            "cost_credits": float(event.cost_credits),
            "billing_key": event.billing_key,
            "meta": event.meta or {},
            "created_at": float(event.created_at),
        }

    def find_by_billing_key(self, billing_key: str) -> dict | None:
        with Session(self.engine) as session:
            event = session.exec(
                select(UsageEvent).where(UsageEvent.billing_key == billing_key)
            ).first()
            return self._event_to_dict(event) if event else None

    def append_usage(
        self,
        identity: str,
        route: str,
        tokens_in: int,
        tokens_out: int,
        cost,
        provider: str = "",
        model: str = "",
        meta: dict | None = None,
        billing_key: str | None = None,
        created_at: float | None = None,
    ) -> dict:
        event, _created = self.append_usage_once(
            identity=identity,
            route=route,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            cost=cost,
            provider=provider,
            model=model,
            meta=meta,
            billing_key=billing_key,
            created_at=created_at,
        )
        return event

    def append_usage_once(
        self,
        identity: str,
        route: str,
        tokens_in: int,
        tokens_out: int,
        cost,
        provider: str = "",
        model: str = "",
        meta: dict | None = None,
        billing_key: str | None = None,
        created_at: float | None = None,
    ) -> tuple[dict, bool]:
        """Write one event; returns ``(event, created)``.

        With a ``billing_key`` that was already recorded, the stored event is
        returned and nothing is written.
        """
        if billing_key:
            existing = self.find_by_billing_key(billing_key)
            if existing is not None:
                return existing, False

        created_ns = _next_created_ns(created_at)
        event_id = uuid.uuid4().hex
        event = UsageEvent(
            key=usage_key(created_ns, event_id),
            id=event_id,
            identity=identity,
            route=route,
            provider=provider or "",
            model=model or "",
            tokens_in=max(0, int(tokens_in or 0)),
            tokens_out=max(0, int(tokens_out or 0)),
            cost_credits=Decimal(str(cost or 0)),
            billing_key=billing_key,
            meta=meta or {},
            created_at=created_ns / 1_000_000_000,
        )

        with Session(self.engine) as session:
            session.add(event)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                if not billing_key:
                    raise
                logger.info("Usage for billing key %s was recorded concurrently", billing_key)
                existing = self.find_by_billing_key(billing_key)
                if existing is None:
                    raise
                return existing, False
            session.refresh(event)
            return self._event_to_dict(event), True

    def list_usage(
        self,
        identity: str,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: str | None = None,
    ) -> tuple[list[dict], str | None]:
        safe_limit = max(1, min(int(limit or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))

        query = select(UsageEvent).where(UsageEvent.identity == identity)
        if cursor:
            query = query.where(UsageEvent.key > cursor)

        with Session(self.engine) as session:
            events = session.exec(query.order_by(UsageEvent.key.asc()).limit(safe_limit + 1)).all()
            items = [self._event_to_dict(event) for event in events[:safe_limit]]

        next_cursor = items[-1]["key"] if len(events) > safe_limit else None
        return items, next_cursor

    def list_since(self, identity: str, start_at: float) -> list[dict]:
        with Session(self.engine) as session:
            events = session.exec(
                select(UsageEvent)
                .where(UsageEvent.identity == identity)
                .where(UsageEvent.created_at >= start_at)
                .order_by(UsageEvent.key.desc())
            ).all()
            return [self._event_to_dict(event) for event in events]
