"""Caller identity resolution.

Tokens are issued and verified by the external identity provider; only their
claims are read here.
"""

import hmac
import logging

import jwt
from fastapi import Request

from app.core.config import settings
from app.core.errors import ForbiddenError, MissingIdentityError, UnauthorizedError

logger = logging.getLogger(__name__)

_EMAIL_CLAIMS = ("email", "em", "sub")


def decode_identity_claim(token: str | None) -> str | None:
    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        logger.debug("Ignoring undecodable token: %s", exc)
        return None

    for claim in _EMAIL_CLAIMS:
        value = claims.get(claim)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def resolve_identity(request: Request) -> str | None:
    candidate = (
        (request.query_params.get("email") or "").strip()
        or (request.headers.get("x-user-email") or "").strip()
        or decode_identity_claim(_bearer_token(request))
        or decode_identity_claim(request.cookies.get(settings.AUTH_COOKIE_NAME))
        or ""
    )
    return candidate.lower() or None


def require_identity(request: Request) -> str:
    identity = resolve_identity(request)
    if not identity:
        raise MissingIdentityError("Caller identity could not be resolved")
    return identity


def _matches(provided: str, expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def _admin_key(request: Request) -> str:
    return (
        request.headers.get("x-admin-key")
        or request.headers.get("x-admin-token")
        or ""
    ).strip()


def is_admin(request: Request) -> bool:
    return _matches(_admin_key(request), settings.ADMIN_API_KEY)


def is_internal_task(request: Request) -> bool:
    return _matches((request.headers.get("x-admin-task") or "").strip(), settings.ADMIN_TASK_SECRET)


def require_admin(request: Request) -> None:
    if not is_admin(request):
        raise UnauthorizedError("Invalid admin key")


def require_admin_or_task(request: Request) -> None:
    if not (is_admin(request) or is_internal_task(request)):
        raise ForbiddenError("Admin key or internal task secret required")
