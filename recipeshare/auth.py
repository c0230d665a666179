from __future__ import annotations

from datetime import timedelta
from functools import wraps
from typing import Callable, Optional

import jwt
import structlog
from flask import current_app, g, request

from .errors import NotFound, Unauthenticated
from .identity import IdentityDirectory
from .models import User, utcnow

logger = structlog.get_logger()

JWT_ALGORITHM = "HS256"


class AuthGate:
    """Issues bearer tokens and resolves them back to a stored user."""

    def __init__(self, identity: IdentityDirectory, *, secret: str, ttl_days: int = 30) -> None:
        self._identity = identity
        self._secret = secret
        self._ttl = timedelta(days=ttl_days)

    def issue_token(self, user_id: str) -> str:
        now = utcnow()
        payload = {
            "id": user_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def resolve(self, authorization: Optional[str]) -> User:
        """Return the user named by an ``Authorization: Bearer`` header."""

        if not authorization or not authorization.startswith("Bearer"):
            logger.warning("No token provided in request headers")
            raise Unauthenticated("Not authorized, no token")

        parts = authorization.split()
        if len(parts) != 2:
            raise Unauthenticated("Not authorized, token failed")

        try:
            payload = jwt.decode(parts[1], self._secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.info("Token expired")
            raise Unauthenticated("Not authorized, token failed")
        except jwt.InvalidTokenError as exc:
            logger.info("Token verification failed", error=type(exc).__name__)
            raise Unauthenticated("Not authorized, token failed")

        user_id = payload.get("id")
        if not user_id or not isinstance(user_id, str):
            logger.warning("Token missing id claim")
            raise Unauthenticated("Not authorized, invalid token")

        try:
            return self._identity.get_user(user_id)
        except NotFound:
            logger.warning("User not found for token", user_id=user_id)
            raise Unauthenticated("Not authorized, user not found")


def _gate() -> AuthGate:
    return current_app.config["AUTH_GATE"]


def _bind_user(user: Optional[User]) -> None:
    g.user = user
    if user is not None:
        structlog.contextvars.bind_contextvars(user_id=user.id)


def login_required(view: Callable) -> Callable:
    """Reject the request with 401 unless it carries a valid bearer token."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        _bind_user(_gate().resolve(request.headers.get("Authorization")))
        return view(*args, **kwargs)

    return wrapper


def optional_login(view: Callable) -> Callable:
    """Resolve the viewer when a valid token is present, otherwise continue anonymously."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        user = None
        header = request.headers.get("Authorization")
        if header:
            try:
                user = _gate().resolve(header)
            except Unauthenticated:
                user = None
        _bind_user(user)
        return view(*args, **kwargs)

    return wrapper


def current_user() -> Optional[User]:
    return g.get("user")


__all__ = ["AuthGate", "current_user", "login_required", "optional_login"]
