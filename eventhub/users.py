"""Account registration and credential verification."""
from __future__ import annotations

import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Dict

from .errors import Conflict, InvalidInput, NotFound, Unauthorized
from .models import Role, User
from .passwords import PasswordHasher
from .repository import UserRepository

logger = logging.getLogger("eventhub.users")

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")
_MAX_EMAIL_LENGTH = 254
_INVALID_CREDENTIALS = "Invalid credentials"


def _normalise_email(email: object) -> str:
    value = str(email or "").strip().lower()
    if not value:
        raise InvalidInput("Email and password are required")
    if len(value) > _MAX_EMAIL_LENGTH or not _EMAIL_PATTERN.fullmatch(value):
        raise InvalidInput("Invalid email format")
    return value


class UserDirectory:
    """Creates accounts and checks credentials against the user repository."""

    def __init__(self, repository: UserRepository, hasher: PasswordHasher) -> None:
        self._repository = repository
        self._hasher = hasher
        self._email_locks: Dict[str, _KeyedLock] = {}
        self._locks_guard = asyncio.Lock()

    async def register(self, email: str, password: str, role: Role | str = Role.ATTENDEE) -> User:
        """Create an account, serialised per email so duplicates cannot slip through."""

        normalised_email = _normalise_email(email)
        if not password:
            raise InvalidInput("Email and password are required")
        try:
            account_role = Role.parse(role)
        except ValueError as exc:
            raise InvalidInput(str(exc)) from exc

        lock = await self._lock_for(normalised_email)
        try:
            async with lock:
                if self._repository.find_by_email(normalised_email) is not None:
                    raise Conflict("User already exists")
                password_hash = await self._hasher.hash_async(password)
                user = User(
                    id=uuid.uuid4().hex,
                    email=normalised_email,
                    password_hash=password_hash,
                    role=account_role,
                    created_at=datetime.now(timezone.utc),
                )
                self._repository.add(user)
        finally:
            await self._release_lock(normalised_email)

        logger.info("Registered user %s with role %s", user.id, user.role.value)
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """Return the matching user; unknown emails and bad passwords fail identically."""

        try:
            normalised_email = _normalise_email(email)
        except InvalidInput:
            normalised_email = ""

        user = self._repository.find_by_email(normalised_email) if normalised_email else None
        hashed = user.password_hash if user is not None else None
        valid = await self._hasher.verify_async(password or "", hashed)
        if user is None or not valid:
            logger.warning("Failed login attempt for %s", normalised_email or "<invalid email>")
            raise Unauthorized(_INVALID_CREDENTIALS)
        return user

    def get(self, user_id: str) -> User:
        user = self._repository.get(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def _lock_for(self, email: str) -> asyncio.Lock:
        async with self._locks_guard:
            entry = self._email_locks.get(email)
            if entry is None:
                entry = _KeyedLock()
                self._email_locks[email] = entry
            entry.holders += 1
            return entry.lock

    async def _release_lock(self, email: str) -> None:
        async with self._locks_guard:
            entry = self._email_locks.get(email)
            if entry is None:
                return
            entry.holders -= 1
            if entry.holders <= 0:
                self._email_locks.pop(email, None)


class _KeyedLock:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.holders = 0


__all__ = ["UserDirectory"]
