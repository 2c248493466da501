import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.core.config import settings
from app.core.database import app_engine, close_app_database, init_app_database
from app.core.errors import register_error_handlers
from app.core.llm.service import get_provider_router
from app.core.logging import request_id_var, setup_logging
from app.modules.admin.router import router as admin_router
from app.modules.billing.router import router as billing_router
from app.modules.credits.router import router as credits_router
from app.modules.health.router import router as health_router
from app.modules.jobs.dispatcher import JobSweeper
from app.modules.jobs.router import router as jobs_router
from app.modules.si.router import router as si_router

setup_logging()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_app_database()
    sweeper = None
    if settings.JOB_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = JobSweeper(
            app_engine,
            get_provider_router,
            interval_seconds=settings.JOB_SWEEP_INTERVAL_SECONDS,
            max_jobs=settings.JOB_SWEEP_MAX_PER_TICK,
        ).start()
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.stop()
        close_app_database()


app = FastAPI(title="Credit Metering API", lifespan=lifespan)

register_error_handlers(app)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = (request.headers.get("x-request-id") or "").strip()[:128] or uuid.uuid4().hex
    request_id_var.set(request_id)
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


app.include_router(health_router)
app.include_router(credits_router)
app.include_router(billing_router)
app.include_router(si_router)
app.include_router(jobs_router)
app.include_router(admin_router)
