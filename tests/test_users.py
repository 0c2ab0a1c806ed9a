from __future__ import annotations

import asyncio

import pytest

from eventhub.errors import Conflict, InvalidInput, NotFound, Unauthorized
from eventhub.models import Role
from eventhub.repository import InMemoryUserRepository
from eventhub.users import UserDirectory

pytestmark = pytest.mark.anyio


@pytest.fixture()
def directory(hasher) -> UserDirectory:
    return UserDirectory(InMemoryUserRepository(), hasher)


async def test_register_normalises_email_and_hashes_password(directory: UserDirectory) -> None:
    user = await directory.register("  Alice@Example.com ", "correct horse", "organizer")

    assert user.email == "alice@example.com"
    assert user.role is Role.ORGANIZER
    assert user.password_hash != "correct horse"
    assert directory.get(user.id) == user


async def test_register_defaults_to_attendee(directory: UserDirectory) -> None:
    user = await directory.register("bob@example.com", "pw")
    assert user.role is Role.ATTENDEE


@pytest.mark.parametrize(
    ("email", "password", "role"),
    [
        ("no-at-sign.example.com", "pw", "ATTENDEE"),
        ("@example.com", "pw", "ATTENDEE"),
        ("", "pw", "ATTENDEE"),
        ("carol@example.com", "", "ATTENDEE"),
        ("carol@example.com", "pw", "OWNER"),
    ],
)
async def test_register_rejects_invalid_input(directory: UserDirectory, email, password, role) -> None:
    with pytest.raises(InvalidInput):
        await directory.register(email, password, role)


async def test_duplicate_registration_conflicts_and_keeps_first_user(directory: UserDirectory) -> None:
    first = await directory.register("dave@example.com", "first-password", Role.ADMIN)

    with pytest.raises(Conflict):
        await directory.register("DAVE@example.com", "second-password", Role.ATTENDEE)

    stored = directory.get(first.id)
    assert stored == first
    assert (await directory.authenticate("dave@example.com", "first-password")).id == first.id


async def test_concurrent_registrations_produce_a_single_account(directory: UserDirectory) -> None:
    results = await asyncio.gather(
        *(directory.register("erin@example.com", f"pw-{index}") for index in range(5)),
        return_exceptions=True,
    )

    created = [result for result in results if not isinstance(result, Exception)]
    conflicts = [result for result in results if isinstance(result, Conflict)]
    assert len(created) == 1
    assert len(conflicts) == 4


async def test_authenticate_failures_are_indistinguishable(directory: UserDirectory) -> None:
    await directory.register("frank@example.com", "right-password")

    with pytest.raises(Unauthorized) as wrong_password:
        await directory.authenticate("frank@example.com", "wrong-password")
    with pytest.raises(Unauthorized) as unknown_email:
        await directory.authenticate("nobody@example.com", "right-password")

    assert type(wrong_password.value) is type(unknown_email.value)
    assert wrong_password.value.to_dict() == unknown_email.value.to_dict()
    assert wrong_password.value.status_code == unknown_email.value.status_code == 401


async def test_authenticate_accepts_case_insensitive_email(directory: UserDirectory) -> None:
    user = await directory.register("grace@example.com", "secret")
    assert (await directory.authenticate("Grace@Example.COM", "secret")).id == user.id


async def test_get_unknown_user_raises_not_found(directory: UserDirectory) -> None:
    with pytest.raises(NotFound):
        directory.get("missing")
