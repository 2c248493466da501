import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.engine import Engine

from app.core.config import settings
from app.core.database import get_engine
from app.core.errors import InvalidRequestError, JobNotFoundError, MissingIdentityError
from app.core.identity import is_admin, require_admin, require_identity, resolve_identity
from app.core.llm.service import get_provider_router
from app.core.logging import request_id_var
from app.modules.jobs.dispatcher import JOB_HANDLERS, run_job_now, trigger_process_one
from app.modules.jobs.repository import JobStore
from app.modules.jobs.schemas import CreateJobRequest, PatchJobRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"], prefix="/v1/jobs")


def _validate_type(job_type: str) -> str:
    job_type = (job_type or "").strip().lower()
    if job_type not in JOB_HANDLERS:
        raise InvalidRequestError(f"Unsupported job type '{job_type}'", code="unsupported_type")
    return job_type


@router.post("")
def create_job_endpoint(
    request: CreateJobRequest,
    background_tasks: BackgroundTasks,
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
    provider_router=Depends(get_provider_router),
):
    job = JobStore(engine).create(identity, _validate_type(request.type), request.params)
    logger.info("Queued %s job %s for %s", job["type"], job["id"], identity)

    if settings.JOB_EAGER_TRIGGER:
        background_tasks.add_task(trigger_process_one, engine, provider_router, request_id_var.get())
    return {"job": job}


@router.get("")
def list_jobs_endpoint(
    limit: int = 25,
    cursor: str | None = None,
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
):
    items, next_cursor = JobStore(engine).list_for_identity(identity, limit=limit, cursor=cursor)
    return {"items": items, "next_cursor": next_cursor}


@router.post("/run")
def run_job_endpoint(
    request: CreateJobRequest,
    identity: str = Depends(require_identity),
    engine: Engine = Depends(get_engine),
    provider_router=Depends(get_provider_router),
):
    job = JobStore(engine).create(identity, _validate_type(request.type), request.params)
    return {"job": run_job_now(job["id"], engine, provider_router), "mode": "sync"}


@router.get("/{job_id}")
def get_job_endpoint(
    job_id: str,
    http_request: Request,
    engine: Engine = Depends(get_engine),
):
    admin = is_admin(http_request)
    identity = resolve_identity(http_request)
    if not identity and not admin:
        raise MissingIdentityError("Caller identity could not be resolved")

    job = JobStore(engine).get(job_id)
    if job is None or (job["identity"] != identity and not admin):
        raise JobNotFoundError(f"Job {job_id} not found")
    return {"job": job}


@router.patch("/{job_id}", dependencies=[Depends(require_admin)])
def patch_job_endpoint(
    job_id: str,
    request: PatchJobRequest,
    engine: Engine = Depends(get_engine),
):
    job = JobStore(engine).patch(job_id, status=request.status, result=request.result)
    return {"ok": True, "job": job}
