import logging
import threading
import time

from sqlalchemy import and_, or_, update
from sqlmodel import Session, select

from app.core.database import app_engine
from app.core.errors import InvalidJobTransitionError, InvalidRequestError, JobNotFoundError
from app.modules.jobs.models import (
    JOB_FAILED,
    JOB_QUEUED,
    JOB_RUNNING,
    JOB_STATUSES,
    JOB_SUCCEEDED,
    TERMINAL_STATUSES,
    Job,
)

logger = logging.getLogger(__name__)

CLAIM_BATCH_SIZE = 10

_STATUS_RANK = {JOB_QUEUED: 0, JOB_RUNNING: 1, JOB_SUCCEEDED: 2, JOB_FAILED: 2}

_clock_lock = threading.Lock()
_last_created_at = 0.0


def _next_created_at() -> float:
    """Creation time, strictly increasing within this process so FIFO order is stable."""
    global _last_created_at
    with _clock_lock:
        now = max(time.time(), _last_created_at + 1e-6)
        _last_created_at = now
        return now


class JobStore:
    def __init__(self, engine=app_engine):
        self.engine = engine

    @staticmethod
    def _job_to_dict(job: Job) -> dict:
        return {
            "id": job.id,
            "identity": job.identity,
            "type": job.type,
            "params": job.params or {},
            "status": job.status,
            "result": job.result,
            "created_at": float(job.created_at),
            "updated_at": float(job.updated_at),
        }

    def create(self, identity: str, job_type: str, params: dict | None = None) -> dict:
        now = _next_created_at()
        job = Job(
            identity=identity,
            type=job_type,
            params=params or {},
            status=JOB_QUEUED,
            created_at=now,
            updated_at=now,
        )
        with Session(self.engine) as session:
            session.add(job)
            session.commit()
            session.refresh(job)
            return self._job_to_dict(job)

    def get(self, job_id: str) -> dict | None:
        with Session(self.engine) as session:
            job = session.get(Job, job_id)
            return self._job_to_dict(job) if job else None

    def _transition(self, session: Session, job_id: str, expected: str, values: dict) -> bool:
        """Conditional write: only lands when the job is still in ``expected``."""
        result = session.exec(
            update(Job)
            .where(Job.id == job_id)
            .where(Job.status == expected)
            .values(updated_at=time.time(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def claim(self, job_id: str) -> dict | None:
        with Session(self.engine) as session:
            claimed = self._transition(session, job_id, JOB_QUEUED, {"status": JOB_RUNNING})
            session.commit()
        if not claimed:
            return None
        logger.info("Claimed job %s", job_id)
        return self.get(job_id)

    def claim_oldest_queued(self) -> dict | None:
        with Session(self.engine) as session:
            candidate_ids = session.exec(
                select(Job.id)
                .where(Job.status == JOB_QUEUED)
                .order_by(Job.created_at.asc(), Job.id.asc())
                .limit(CLAIM_BATCH_SIZE)
            ).all()

        for job_id in candidate_ids:
            job = self.claim(job_id)
            if job is not None:
                return job
            logger.debug("Job %s was claimed elsewhere", job_id)
        return None

    def finish(self, job_id: str, status: str, result: dict | None) -> dict:
        if status not in TERMINAL_STATUSES:
            raise InvalidJobTransitionError(f"Cannot finish a job as '{status}'")

        with Session(self.engine) as session:
            finished = self._transition(
                session, job_id, JOB_RUNNING, {"status": status, "result": result}
            )
            session.commit()

        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if not finished:
            raise InvalidJobTransitionError(
                f"Job {job_id} is '{job['status']}', not running",
                detail={"status": job["status"]},
            )
        logger.info("Job %s finished as %s", job_id, status)
        return job

    def patch(self, job_id: str, status: str | None = None, result: dict | None = None) -> dict:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")

        values: dict = {}
        if status is not None and status != job["status"]:
            if status not in JOB_STATUSES:
                raise InvalidRequestError(f"Unknown status '{status}'", code="invalid_status")
            if _STATUS_RANK[status] < _STATUS_RANK[job["status"]]:
                raise InvalidJobTransitionError(
                    f"Cannot move job from '{job['status']}' to '{status}'",
                    detail={"status": job["status"]},
                )
            values["status"] = status
        if result is not None:
            values["result"] = result
        if not values:
            return job

        with Session(self.engine) as session:
            applied = self._transition(session, job_id, job["status"], values)
            session.commit()
        if not applied:
            raise InvalidJobTransitionError(f"Job {job_id} changed concurrently")
        return self.get(job_id)

    def list_for_identity(
        self,
        identity: str,
        limit: int = 25,
        cursor: str | None = None,
    ) -> tuple[list[dict], str | None]:
        safe_limit = max(1, min(int(limit or 25), 100))
        query = select(Job).where(Job.identity == identity)

        with Session(self.engine) as session:
            if cursor:
                anchor = session.get(Job, cursor)
                if anchor is not None:
                    query = query.where(
                        or_(
                            Job.created_at < anchor.created_at,
                            and_(Job.created_at == anchor.created_at, Job.id < anchor.id),
                        )
                    )
            jobs = session.exec(
                query.order_by(Job.created_at.desc(), Job.id.desc()).limit(safe_limit + 1)
            ).all()
            items = [self._job_to_dict(job) for job in jobs[:safe_limit]]

        next_cursor = items[-1]["id"] if len(jobs) > safe_limit else None
        return items, next_cursor
