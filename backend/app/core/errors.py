"""Application errors rendered as ``{"error": <code>, ...detail}`` responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.logging import request_id_var

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "", code: str | None = None, detail: dict | None = None):
        self.message = message or self.code
        if code:
            self.code = code
        self.detail = detail or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, **self.detail}


class InvalidRequestError(AppError):
    status_code = 400
    code = "invalid_request"


class MissingIdentityError(InvalidRequestError):
    code = "missing_email"


class UnauthorizedError(AppError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"


class InsufficientCreditsError(AppError):
    status_code = 402
    code = "insufficient_credits"

    def __init__(self, balance: dict, required: float = 0.0):
        super().__init__(
            message="Insufficient credits for this operation",
            detail={**balance, "required": required},
        )
        self.balance = balance
        self.required = required


class JobNotFoundError(AppError):
    status_code = 404
    code = "not_found"


class InvalidJobTransitionError(AppError):
    status_code = 409
    code = "invalid_transition"


class LedgerConflictError(AppError):
    status_code = 409
    code = "balance_conflict"


class AllProvidersFailedError(AppError):
    status_code = 502
    code = "all_providers_failed"

    def __init__(self, failures: list[tuple[str, str]]):
        self.failures = failures
        reasons = " | ".join(f"{name}: {reason}" for name, reason in failures)
        super().__init__(
            message=f"all providers failed: {reasons or 'no providers configured'}",
            detail={
                "failures": [{"provider": name, "reason": reason} for name, reason in failures],
            },
        )


def _json_error(status_code: int, payload: dict) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=payload,
        headers={"X-Request-Id": request_id_var.get()},
    )


async def _app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s: %s", exc.code, exc.message)
    return _json_error(exc.status_code, exc.to_dict())


async def _validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _json_error(400, {"error": "invalid_request", "errors": errors})


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", type(exc).__name__)
    return _json_error(500, {"error": "internal_error", "request_id": request_id_var.get()})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
