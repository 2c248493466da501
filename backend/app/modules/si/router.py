import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.engine import Engine

from app.core.database import get_engine
from app.core.errors import AllProvidersFailedError
from app.core.identity import require_identity
from app.core.llm.schemas import CompletionResult
from app.core.llm.service import get_provider_router
from app.modules.billing.pricing import credits_for_tokens, estimate_tokens
from app.modules.billing.service import charge_usage, ensure_funds
from app.modules.si.schemas import AskRequest
from app.modules.si.skills import build_completion_request, degraded_text, list_skills

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Skills"], prefix="/v1/si")

ASK_ROUTE = "/v1/si/ask"


def _set_billing_headers(response: Response, result: CompletionResult, cost: float, balance: float) -> None:
    response.headers["X-Credits-Used"] = f"{cost:.3f}"
    response.headers["X-Credits-Balance"] = f"{balance:.3f}"
    response.headers["X-Tokens-In"] = str(result.tokens_in)
    response.headers["X-Tokens-Out"] = str(result.tokens_out)
    response.headers["X-Provider"] = result.provider
    response.headers["X-Model"] = result.model


@router.get("/skills")
def list_skills_endpoint():
    return {"skills": list_skills()}


@router.post("/ask")
def ask_endpoint(
    request: AskRequest,
    response: Response,
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
    provider_router=Depends(get_provider_router),
):
    completion = build_completion_request(request.model_dump())
    estimated_cost = credits_for_tokens(estimate_tokens(completion.system + completion.prompt), 0)
    ensure_funds(identity, estimated_cost, engine=engine)

    degraded = False
    try:
        result = provider_router.complete(completion, provider=request.provider)
    except AllProvidersFailedError as exc:
        logger.warning("Serving degraded reply to %s: %s", identity, exc.message)
        degraded = True
        result = CompletionResult(
            text=degraded_text(completion.prompt),
            provider="degraded",
            model="n/a",
            tokens_in=estimate_tokens(completion.prompt),
            tokens_out=0,
        )

    charge = charge_usage(
        identity=identity,
        route=ASK_ROUTE,
        result=result,
        meta={"skill": (request.skill or "general").lower()},
        degraded=degraded,
        engine=engine,
    )
    balance = charge["balance"]["balance_credits"]
    _set_billing_headers(response, result, charge["cost"], balance)

    return {
        "result": {"kind": "text", "content": result.text},
        "cost": charge["cost"],
        "balance": balance,
        "provider": result.provider,
        "model": result.model,
        "usage": {"tokens_in": result.tokens_in, "tokens_out": result.tokens_out},
        "degraded": degraded,
    }
