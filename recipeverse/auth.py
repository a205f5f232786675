"""Token issuance/verification, password hashing and the route guard."""

from __future__ import annotations

import functools
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import bcrypt
import structlog
from flask import g, request
from jose import ExpiredSignatureError, JWTError, jwt

from .context import get_context
from .errors import NotFound, Unauthorized
from .settings import Settings
from .validation import is_valid_id


class IdentityVerifier:
    """Stateless JWT credentials plus bcrypt password hashes."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        expires: timedelta = timedelta(days=7),
        rounds: int = 12,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._expires = expires
        self._rounds = rounds

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentityVerifier":
        return cls(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires=timedelta(days=settings.jwt_expires_days),
        )

    def sign(self, user_id: str, username: Optional[str] = None) -> str:
        now = datetime.now(timezone.utc)
        claims = {"id": user_id, "username": username, "iat": now, "exp": now + self._expires}
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        """Return ``{"userId": ...}`` for a valid token or raise :class:`Unauthorized`."""

        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError:
            raise Unauthorized("Token expired - please login again") from None
        except JWTError:
            raise Unauthorized("Invalid token") from None

        user_id = claims.get("id")
        if not is_valid_id(user_id):
            raise Unauthorized("Invalid token")
        return {"userId": user_id}

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def check_password(self, password: str, hashed: str) -> bool:
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False


def _request_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token
    return request.cookies.get("token") or None


def login_required(view: Callable) -> Callable:
    """Reject the request unless it carries a valid token for an existing user.

    The authenticated :class:`~recipeverse.models.User` is stored on ``g.user``.
    """

    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        ctx = get_context()
        token = _request_token()
        if not token:
            raise Unauthorized("No token provided, authorization denied")

        claims = ctx.identity.verify(token)
        try:
            g.user = ctx.users.get_user(claims["userId"])
        except NotFound:
            raise Unauthorized("User not found - token invalid") from None

        structlog.contextvars.bind_contextvars(user_id=g.user.id)
        return view(*args, **kwargs)

    return wrapper


__all__ = ["IdentityVerifier", "login_required"]
