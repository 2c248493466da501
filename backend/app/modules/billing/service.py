import logging
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.core.config import settings
from app.core.database import app_engine
from app.core.errors import InsufficientCreditsError
from app.core.llm.schemas import CompletionResult
from app.modules.billing.pricing import credits_for_tokens
from app.modules.billing.repository import UsageRecorder
from app.modules.credits.repository import CreditLedger

logger = logging.getLogger(__name__)


def is_free_identity(identity: str) -> bool:
    return (identity or "").lower().startswith(settings.free_identity_prefixes)


def balance_payload(balance: dict) -> dict:
    return {
        "identity": balance["identity"],
        "balance": balance["balance_credits"],
        "balance_credits": balance["balance_credits"],
        "warn_credits": settings.WARN_CREDITS,
        "updated_at": balance["updated_at"],
    }


def get_balance_payload(identity: str, engine=app_engine) -> dict:
    return balance_payload(CreditLedger(engine).get_balance(identity))


def ensure_funds(identity: str, estimated_cost, engine=app_engine) -> dict:
    """Return the caller's balance, or raise 402 when it cannot cover ``estimated_cost``."""
    balance = CreditLedger(engine).get_balance(identity)
    if is_free_identity(identity):
        return balance

    available = Decimal(str(balance["balance_credits"]))
    required = Decimal(str(estimated_cost or 0))
    if available <= 0 or available < required:
        raise InsufficientCreditsError(balance_payload(balance), required=float(required))
    return balance


def charge_usage(
    identity: str,
    route: str,
    result: CompletionResult,
    meta: dict | None = None,
    billing_key: str | None = None,
    degraded: bool = False,
    engine=app_engine,
) -> dict:
    """Record one usage event for ``result`` and deduct its cost.

    Degraded results are recorded at zero cost and never touch the balance.
    A ``billing_key`` seen before returns the earlier charge without deducting again.
    """
    meta = dict(meta or {})
    if degraded:
        meta["degraded"] = True
        cost = Decimal("0")
    else:
        cost = credits_for_tokens(result.tokens_in, result.tokens_out)

    recorder = UsageRecorder(engine)
    ledger = CreditLedger(engine)
    event, created = recorder.append_usage_once(
        identity=identity,
        route=route,
        tokens_in=result.tokens_in,
        tokens_out=result.tokens_out,
        cost=cost,
        provider=result.provider,
        model=result.model,
        meta=meta,
        billing_key=billing_key,
    )

    if not created:
        logger.info("Skipping duplicate charge for billing key %s", billing_key)
        return {
            "event": event,
            "cost": event["cost_credits"],
            "balance": ledger.get_balance(identity),
        }

    if cost > 0 and not is_free_identity(identity):
        balance = ledger.adjust_balance(
            identity,
            -cost,
            reason=f"usage:{route}",
            meta={"usage_id": event["id"], "billing_key": billing_key},
        )
    else:
        balance = ledger.get_balance(identity)

    logger.info(
        "Charged %s credits to %s for %s (%s/%s, %d+%d tokens)",
        cost,
        identity,
        route,
        result.provider,
        result.model,
        result.tokens_in,
        result.tokens_out,
    )
    return {"event": event, "cost": float(cost), "balance": balance}


def get_usage_summary(identity: str, days: int = 30, engine=app_engine) -> dict:
    safe_days = max(1, min(int(days), 365))
    start_at = time.time() - (safe_days * 86400)
    events = UsageRecorder(engine).list_since(identity, start_at)

    totals = {
        "requests": 0,
        "tokens_in": 0,
        "tokens_out": 0,
        "credits": Decimal("0"),
        "degraded": 0,
    }

    end_date = datetime.now(timezone.utc).date()
    start_date = end_date - timedelta(days=safe_days - 1)
    daily_map: dict[str, dict] = {}
    cursor_date = start_date
    while cursor_date <= end_date:
        key = cursor_date.isoformat()
        daily_map[key] = {"date": key, "requests": 0, "tokens": 0, "credits": Decimal("0")}
        cursor_date += timedelta(days=1)

    by_model: dict[str, dict] = {}

    for item in events:
        cost = Decimal(str(item["cost_credits"]))
        tokens = item["tokens_in"] + item["tokens_out"]
        totals["requests"] += 1
        totals["tokens_in"] += item["tokens_in"]
        totals["tokens_out"] += item["tokens_out"]
        totals["credits"] += cost
        if item["meta"].get("degraded"):
            totals["degraded"] += 1

        day_key = datetime.fromtimestamp(item["created_at"], tz=timezone.utc).date().isoformat()
        if day_key in daily_map:
            point = daily_map[day_key]
            point["requests"] += 1
            point["tokens"] += tokens
            point["credits"] += cost

        model_key = f"{item['provider']}::{item['model']}"
        if model_key not in by_model:
            by_model[model_key] = {
                "provider": item["provider"],
                "model": item["model"],
                "requests": 0,
                "tokens_in": 0,
                "tokens_out": 0,
                "credits": Decimal("0"),
            }
        row = by_model[model_key]
        row["requests"] += 1
        row["tokens_in"] += item["tokens_in"]
        row["tokens_out"] += item["tokens_out"]
        row["credits"] += cost

    by_model_list = sorted(
        by_model.values(),
        key=lambda entry: (entry["credits"], entry["tokens_in"] + entry["tokens_out"]),
        reverse=True,
    )

    return {
        "identity": identity,
        "range_days": safe_days,
        "generated_at": time.time(),
        "totals": {**totals, "credits": float(totals["credits"])},
        "by_model": [{**row, "credits": float(row["credits"])} for row in by_model_list],
        "daily": [
            {**daily_map[key], "credits": float(daily_map[key]["credits"])}
            for key in sorted(daily_map.keys())
        ],
    }
