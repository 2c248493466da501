import logging
import threading

import httpx

from app.core.config import settings
from app.core.errors import AppError, InvalidJobTransitionError, InvalidRequestError, JobNotFoundError
from app.modules.jobs.handlers import run_completion_job
from app.modules.jobs.models import JOB_FAILED, JOB_SUCCEEDED
from app.modules.jobs.repository import JobStore

logger = logging.getLogger(__name__)

PROCESS_ONE_PATH = "/v1/admin/process-one"

JOB_HANDLERS = {
    "si": run_completion_job,
    "completion": run_completion_job,
}


def execute_job(job: dict, engine, router) -> dict:
    """Run the handler for a claimed (running) job and persist its terminal state."""
    handler = JOB_HANDLERS.get(job["type"])
    try:
        if handler is None:
            raise InvalidRequestError(f"Unsupported job type '{job['type']}'", code="unsupported_type")
        result = handler(job, engine=engine, router=router)
        status = JOB_SUCCEEDED
    except AppError as exc:
        logger.warning("Job %s failed: %s", job["id"], exc.message)
        status = JOB_FAILED
        result = {**exc.to_dict(), "detail": exc.message}
    except Exception as exc:  # noqa: BLE001
        logger.exception("Job %s crashed", job["id"])
        status = JOB_FAILED
        result = {"error": "internal_error", "detail": str(exc) or type(exc).__name__}

    store = JobStore(engine)
    try:
        return store.finish(job["id"], status, result)
    except InvalidJobTransitionError as exc:
        # settled elsewhere (admin patch) while the handler ran
        logger.warning("Job %s not finished: %s", job["id"], exc.message)
        return store.get(job["id"])


def process_one(engine, router) -> dict:
    job = JobStore(engine).claim_oldest_queued()
    if job is None:
        return {"processed": 0}

    finished = execute_job(job, engine, router)
    return {"processed": 1, "job_id": finished["id"], "status": finished["status"]}


def run_job_now(job_id: str, engine, router) -> dict:
    store = JobStore(engine)
    job = store.claim(job_id)
    if job is None:
        existing = store.get(job_id)
        if existing is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        # already claimed by a dispatcher
        return existing
    return execute_job(job, engine, router)


def sweep(engine, router, max_jobs: int | None = None) -> dict:
    limit = max(1, int(max_jobs or settings.JOB_SWEEP_MAX_PER_TICK))
    processed = 0
    ticks = 0
    for _ in range(limit):
        ticks += 1
        outcome = process_one(engine, router)
        if not outcome["processed"]:
            break
        processed += 1

    if processed:
        logger.info("Sweep processed %d job(s) in %d tick(s)", processed, ticks)
    return {"processed": processed, "ticks": ticks}


def trigger_process_one(engine, router, request_id: str = "-") -> None:
    """Best-effort kick of the dispatcher right after a job is queued."""
    base_url = (settings.JOB_TRIGGER_BASE_URL or "").strip().rstrip("/")
    if base_url:
        try:
            response = httpx.post(
                f"{base_url}{PROCESS_ONE_PATH}",
                headers={"X-Admin-Task": settings.ADMIN_TASK_SECRET, "X-Request-Id": request_id},
                timeout=10.0,
            )
            response.raise_for_status()
            logger.info("[trigger rid=%s] process-one responded %s", request_id, response.status_code)
        except httpx.HTTPError as exc:
            logger.warning("[trigger rid=%s] process-one call failed: %s", request_id, exc)
        return

    try:
        outcome = process_one(engine, router)
        logger.info("[trigger rid=%s] processed in-process: %s", request_id, outcome)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[trigger rid=%s] in-process dispatch failed: %s", request_id, exc)


class JobSweeper:
    """Periodically sweeps queued jobs on a background thread."""

    def __init__(self, engine, router_factory, interval_seconds: float, max_jobs: int | None = None):
        self._engine = engine
        self._router_factory = router_factory
        self._interval_seconds = interval_seconds
        self._max_jobs = max_jobs
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="job-sweeper", daemon=True)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval_seconds):
            try:
                sweep(self._engine, self._router_factory(), self._max_jobs)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Job sweep failed: %s", exc)

    def start(self) -> "JobSweeper":
        logger.info("Starting job sweeper every %.1fs", self._interval_seconds)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop_event.set()
        self._thread.join(timeout=5.0)
