from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from eventhub.config import Settings
from eventhub.models import Role, User
from eventhub.passwords import PasswordHasher


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def settings() -> Settings:
    return Settings(secret_key="tests-secret-key", bcrypt_rounds=4)


@pytest.fixture()
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture()
def make_user() -> Callable[..., User]:
    def factory(user_id: str, role: Role = Role.ATTENDEE) -> User:
        return User(
            id=user_id,
            email=f"{user_id}@example.com",
            password_hash="unused",
            role=role,
            created_at=datetime.now(timezone.utc),
        )

    return factory
