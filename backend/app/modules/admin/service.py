"""Admin maintenance: retention cleanup for usage events and jobs."""

import logging
import time

from sqlalchemy import func
from sqlmodel import Session, delete, select

from app.core.database import app_engine
from app.core.errors import InvalidRequestError
from app.modules.billing.models import UsageEvent
from app.modules.jobs.models import Job

logger = logging.getLogger(__name__)

CLEANUP_KINDS = ("usage", "jobs", "both")
DEFAULT_OLDER_THAN_DAYS = 30
DEFAULT_CLEANUP_LIMIT = 500
MAX_CLEANUP_LIMIT = 5000

# table name -> (model, primary key column)
_TARGETS = {
    "usage": (UsageEvent, UsageEvent.key),
    "jobs": (Job, Job.id),
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _cleanup_table(
    session: Session,
    name: str,
    cutoff: float,
    budget: int,
    dry_run: bool,
    identity_prefix: str,
) -> tuple[int, int, int]:
    """Delete up to ``budget`` rows older than ``cutoff``; returns (scanned, deleted, kept)."""
    model, pk = _TARGETS[name]
    filters = []
    if identity_prefix:
        filters.append(model.identity.like(f"{_escape_like(identity_prefix)}%", escape="\\"))

    expired = []
    if budget > 0:
        expired = session.exec(
            select(pk)
            .where(model.created_at < cutoff, *filters)
            .order_by(model.created_at.asc())
            .limit(budget)
        ).all()
    kept = session.exec(
        select(func.count()).select_from(model).where(model.created_at >= cutoff, *filters)
    ).one()

    if expired and not dry_run:
        session.exec(delete(model).where(pk.in_(expired)))

    return len(expired) + int(kept), len(expired), int(kept)


def cleanup(
    kind: str = "both",
    older_than_days: float = DEFAULT_OLDER_THAN_DAYS,
    limit: int = DEFAULT_CLEANUP_LIMIT,
    dry_run: bool = False,
    identity_prefix: str = "",
    engine=app_engine,
    now: float | None = None,
) -> dict:
    kind = (kind or "both").strip().lower()
    if kind not in CLEANUP_KINDS:
        raise InvalidRequestError(f"kind must be one of {', '.join(CLEANUP_KINDS)}", code="invalid_kind")

    older_than_days = max(0.0, float(older_than_days if older_than_days is not None else DEFAULT_OLDER_THAN_DAYS))
    limit = max(1, min(int(limit or DEFAULT_CLEANUP_LIMIT), MAX_CLEANUP_LIMIT))
    identity_prefix = (identity_prefix or "").strip().lower()
    cutoff = (now if now is not None else time.time()) - older_than_days * 86400

    report = {
        "ok": True,
        "dry_run": dry_run,
        "kind": kind,
        "older_than_days": older_than_days,
        "limit": limit,
        "cutoff": cutoff,
        "scanned": {"usage": 0, "jobs": 0},
        "deleted": {"usage": 0, "jobs": 0},
        "kept": {"usage": 0, "jobs": 0},
    }

    names = ["usage", "jobs"] if kind == "both" else [kind]
    with Session(engine) as session:
        for name in names:
            budget = limit - sum(report["deleted"].values())
            scanned, deleted, kept = _cleanup_table(
                session, name, cutoff, budget, dry_run, identity_prefix
            )
            report["scanned"][name] = scanned
            report["deleted"][name] = deleted
            report["kept"][name] = kept
        if not dry_run:
            session.commit()

    logger.info(
        "Cleanup%s kind=%s cutoff=%.0f deleted=%s kept=%s",
        " (dry run)" if dry_run else "",
        kind,
        cutoff,
        report["deleted"],
        report["kept"],
    )
    return report
