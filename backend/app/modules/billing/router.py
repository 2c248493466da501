from fastapi import APIRouter, Depends, Query
from sqlalchemy.engine import Engine

from app.core.database import get_engine
from app.core.identity import require_identity
from app.modules.billing.repository import DEFAULT_PAGE_SIZE, UsageRecorder
from app.modules.billing.service import get_balance_payload, get_usage_summary

router = APIRouter(tags=["Billing"], prefix="/v1/billing")


@router.get("/balance")
def get_balance_endpoint(
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
):
    return get_balance_payload(identity, engine=engine)


@router.get("/usage")
def list_usage_endpoint(
    limit: int = Query(DEFAULT_PAGE_SIZE),
    cursor: str | None = None,
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
):
    items, next_cursor = UsageRecorder(engine).list_usage(identity, limit=limit, cursor=cursor)
    return {"identity": identity, "items": items, "next_cursor": next_cursor}


@router.get("/summary")
def get_summary_endpoint(
    days: int = 30,
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
):
    return get_usage_summary(identity, days=days, engine=engine)
