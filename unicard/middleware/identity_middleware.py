# unicard/middleware/identity_middleware.py
import logging

from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from unicard.core.config import settings
from unicard.core.security import decode_access_token
from unicard.schemas.actor_schema import Actor

logger = logging.getLogger(__name__)


def actor_from_token(token: str) -> Actor | None:
    try:
        payload = decode_access_token(token)
        return Actor(id=int(payload["sub"]), role=str(payload.get("role", "")))
    except (JWTError, KeyError, TypeError, ValueError) as e:
        logger.info("Rejected bearer token: %s", e)
        return None


def actor_from_headers(request: Request) -> Actor | None:
    user_id = request.headers.get("X-User-Id")
    if not user_id:
        return None
    try:
        return Actor(id=int(user_id), role=request.headers.get("X-User-Role", "viewer").strip().lower())
    except ValueError:
        logger.info("Rejected non-numeric X-User-Id header: %r", user_id)
        return None


class IdentityMiddleware(BaseHTTPMiddleware):
    """Resolves ``request.state.actor``; the core never reads it on its own."""

    async def dispatch(self, request: Request, call_next):
        actor = None
        auth = request.headers.get("Authorization")
        if auth and auth.lower().startswith("bearer "):
            actor = actor_from_token(auth.split(" ", 1)[1].strip())
        elif settings.TRUST_ACTOR_HEADERS:
            actor = actor_from_headers(request)
        request.state.actor = actor
        response = await call_next(request)
        return response
