from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.engine import Engine

from app.core.database import get_engine
from app.core.identity import require_admin, require_admin_or_task
from app.core.llm.service import get_provider_router
from app.modules.admin.service import DEFAULT_CLEANUP_LIMIT, DEFAULT_OLDER_THAN_DAYS, cleanup
from app.modules.jobs.dispatcher import process_one, sweep

router = APIRouter(tags=["Admin"], prefix="/v1/admin")


class CleanupRequest(BaseModel):
    kind: str = "both"
    older_than_days: float = DEFAULT_OLDER_THAN_DAYS
    limit: int = DEFAULT_CLEANUP_LIMIT
    dry_run: bool = False
    identity_prefix: str = ""


class SweepRequest(BaseModel):
    max_jobs: int | None = None


@router.get("/ping", dependencies=[Depends(require_admin)])
def ping():
    return {"ok": True}


@router.post("/process-one", dependencies=[Depends(require_admin_or_task)])
def process_one_endpoint(
    engine: Engine = Depends(get_engine),
    provider_router=Depends(get_provider_router),
):
    return process_one(engine, provider_router)


@router.post("/sweep", dependencies=[Depends(require_admin_or_task)])
def sweep_endpoint(
    request: SweepRequest | None = None,
    engine: Engine = Depends(get_engine),
    provider_router=Depends(get_provider_router),
):
    max_jobs = request.max_jobs if request else None
    return sweep(engine, provider_router, max_jobs=max_jobs)


@router.post("/cleanup", dependencies=[Depends(require_admin)])
def cleanup_endpoint(
    request: CleanupRequest,
    engine: Engine = Depends(get_engine),
):
    return cleanup(
        kind=request.kind,
        older_than_days=request.older_than_days,
        limit=request.limit,
        dry_run=request.dry_run,
        identity_prefix=request.identity_prefix,
        engine=engine,
    )
