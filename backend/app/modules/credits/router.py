import logging

from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine

from app.core.database import get_engine
from app.core.errors import InvalidRequestError, MissingIdentityError
from app.core.identity import require_admin, require_identity
from app.modules.billing.service import balance_payload, get_balance_payload
from app.modules.credits.repository import CreditLedger
from app.modules.credits.schemas import AdjustCreditsRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Credits"], prefix="/v1/credits")


@router.get("")
def get_credits_endpoint(
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
):
    return get_balance_payload(identity, engine=engine)


@router.get("/transactions")
def list_transactions_endpoint(
    limit: int = 50,
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
):
    return {"items": CreditLedger(engine).list_transactions(identity, limit=limit)}


@router.post("/adjust", dependencies=[Depends(require_admin)])
def adjust_credits_endpoint(
    request: AdjustCreditsRequest,
    engine: Engine = Depends(get_engine),
):
    identity = request.email.strip().lower()
    if not identity:
        raise MissingIdentityError("email is required")
    if request.set_value is not None and request.delta is not None:
        raise InvalidRequestError("Provide either set or delta", code="set_and_delta_conflict")
    if request.set_value is None and request.delta is None:
        raise InvalidRequestError("Provide set or delta", code="nothing_to_do")

    ledger = CreditLedger(engine)
    meta = {"source": "admin"}
    if request.set_value is not None:
        balance = ledger.set_balance(identity, request.set_value, reason=request.reason or "admin_set", meta=meta)
    else:
        balance = ledger.adjust_balance(identity, request.delta, reason=request.reason or "admin_adjust", meta=meta)

    logger.info("Admin adjusted credits for %s to %s", identity, balance["balance_credits"])
    return balance_payload(balance)
