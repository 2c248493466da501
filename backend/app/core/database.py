import logging
import time

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, text

from app.core.config import settings

logger = logging.getLogger(__name__)
DB_STARTUP_MAX_ATTEMPTS = 30
DB_STARTUP_RETRY_DELAY_SECONDS = 1.0


def build_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite gets a single shared connection."""
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


app_engine = build_engine(settings.app_database_url)


def _safe_url(value) -> str:
    return value.render_as_string(hide_password=True)


def _wait_for_connection(engine: Engine, name: str) -> None:
    last_error: Exception | None = None

    for attempt in range(1, DB_STARTUP_MAX_ATTEMPTS + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            logger.info(
                "Waiting for %s (attempt %d/%d): %s",
                name,
                attempt,
                DB_STARTUP_MAX_ATTEMPTS,
                exc,
            )
            if attempt < DB_STARTUP_MAX_ATTEMPTS:
                time.sleep(DB_STARTUP_RETRY_DELAY_SECONDS)

    if last_error:
        raise last_error


def ensure_app_database_exists(engine: Engine = app_engine) -> None:
    """Create the PostgreSQL database on first boot; other backends are used as-is."""
    url = engine.url
    if url.get_backend_name() != "postgresql":
        return

    database_name = url.database
    if not database_name:
        return

    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
    try:
        _wait_for_connection(admin_engine, "postgres admin database")

        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": database_name},
            ).scalar()

            if not exists:
                safe_database_name = database_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_database_name}"'))
                logger.info(
                    "Created PostgreSQL database '%s' because it did not exist.",
                    database_name,
                )
    finally:
        admin_engine.dispose()

    _wait_for_connection(engine, f"application database '{database_name}'")


def get_engine() -> Engine:
    return app_engine


def create_tables(engine: Engine) -> None:
    from app.modules.billing.models import UsageEvent
    from app.modules.credits.models import CreditBalance, CreditTransaction
    from app.modules.jobs.models import Job

    _ = (UsageEvent, CreditBalance, CreditTransaction, Job)
    SQLModel.metadata.create_all(engine)


def check_connection(engine: Engine) -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Database readiness check failed: %s", exc)
        return False
    return True


def init_app_database() -> None:
    logger.info("Initializing app database on %s", _safe_url(app_engine.url))
    ensure_app_database_exists(app_engine)
    create_tables(app_engine)
    logger.info("Application tables are ready on %s", _safe_url(app_engine.url))


def close_app_database() -> None:
    app_engine.dispose()
    logger.info("Database engine disposed.")
