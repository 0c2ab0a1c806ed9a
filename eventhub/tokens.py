"""Signed session tokens carrying a user's identity and role."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from .errors import Unauthorized
from .models import Role, TokenClaims, User

_ALGORITHM = "HS256"


class TokenService:
    """Issue and verify HS256 JWTs with a process-wide secret."""

    def __init__(self, secret_key: str, *, ttl: timedelta) -> None:
        if not secret_key:
            raise ValueError("A signing secret must be provided")
        if ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        self._secret_key = secret_key
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def sign(self, user: User) -> str:
        now = self._now()
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str | None) -> TokenClaims:
        """Return the claims of a valid token; any decoding problem is ``Unauthorized``."""

        if not token:
            raise Unauthorized("Missing token")
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
            return TokenClaims(
                user_id=str(payload["sub"]),
                email=str(payload["email"]),
                role=Role.parse(payload["role"]),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            )
        except jwt.ExpiredSignatureError as exc:
            raise Unauthorized("Token expired") from exc
        except (jwt.PyJWTError, KeyError, TypeError, ValueError) as exc:
            raise Unauthorized("Invalid token") from exc

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["TokenService"]
