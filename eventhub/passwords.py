"""Password hashing backed by passlib, executed off the event loop."""
from __future__ import annotations

import anyio
from passlib.context import CryptContext

from .config import DEFAULT_BCRYPT_ROUNDS


class PasswordHasher:
    """One-way password hashing with constant-shape verification."""

    def __init__(self, *, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return self._context.verify(password, hashed)
        except ValueError:
            return False

    def dummy_verify(self) -> bool:
        """Spend the time of a real verification so unknown accounts are not revealed."""

        return self._context.dummy_verify()

    async def hash_async(self, password: str) -> str:
        return await anyio.to_thread.run_sync(self.hash, password)

    async def verify_async(self, password: str, hashed: str | None) -> bool:
        if hashed is None:
            await anyio.to_thread.run_sync(self.dummy_verify)
            return False
        return await anyio.to_thread.run_sync(self.verify, password, hashed)


__all__ = ["PasswordHasher"]
