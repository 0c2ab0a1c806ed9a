"""Tests for the passlib-backed password hasher."""

from __future__ import annotations

import pytest

from eventhub.passwords import PasswordHasher


def test_hash_and_verify(hasher: PasswordHasher) -> None:
    hashed = hasher.hash("supersecurepassword")

    assert hashed.startswith("$2b$04$")
    assert hasher.verify("supersecurepassword", hashed)
    assert not hasher.verify("incorrect", hashed)


def test_malformed_hash_does_not_verify(hasher: PasswordHasher) -> None:
    assert not hasher.verify("anything", "not-a-bcrypt-hash")


@pytest.mark.anyio
async def test_async_helpers_run_off_the_event_loop(hasher: PasswordHasher) -> None:
    hashed = await hasher.hash_async("anothersecurepassword")

    assert await hasher.verify_async("anothersecurepassword", hashed)
    assert not await hasher.verify_async("anothersecurepassword", None)
