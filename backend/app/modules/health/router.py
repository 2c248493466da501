from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from app.core.database import check_connection, get_engine

router = APIRouter(tags=["Health"])


@router.get("/healthz")
def healthz():
    return {"status": "ok"}


@router.get("/ready")
def ready(engine: Engine = Depends(get_engine)):
    if not check_connection(engine):
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": False})
    return {"status": "ok", "database": True}
