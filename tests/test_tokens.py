from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from eventhub.errors import Unauthorized
from eventhub.models import Role
from eventhub.tokens import TokenService


@pytest.fixture()
def service() -> TokenService:
    return TokenService("tests-secret-key", ttl=timedelta(hours=1))


def test_sign_and_verify_round_trip(service: TokenService, make_user) -> None:
    user = make_user("organizer-1", Role.ORGANIZER)

    claims = service.verify(service.sign(user))

    assert claims.user_id == user.id
    assert claims.email == user.email
    assert claims.role is Role.ORGANIZER
    assert claims.expires_at > datetime.now(timezone.utc)


def test_altered_signature_is_rejected(service: TokenService, make_user) -> None:
    header, payload, signature = service.sign(make_user("u1")).split(".")
    tampered_first = "A" if signature[0] != "A" else "B"
    tampered = ".".join([header, payload, tampered_first + signature[1:]])

    with pytest.raises(Unauthorized):
        service.verify(tampered)


def test_token_from_other_secret_is_rejected(service: TokenService, make_user) -> None:
    other = TokenService("a-different-secret", ttl=timedelta(hours=1))

    with pytest.raises(Unauthorized) as excinfo:
        service.verify(other.sign(make_user("u1")))
    assert excinfo.value.message == "Invalid token"


def test_expired_token_is_rejected(make_user) -> None:
    issuer = TokenService("tests-secret-key", ttl=timedelta(minutes=5))
    issuer._now = lambda: datetime.now(timezone.utc) - timedelta(hours=1)  # type: ignore[method-assign]
    token = issuer.sign(make_user("u1"))

    verifier = TokenService("tests-secret-key", ttl=timedelta(minutes=5))
    with pytest.raises(Unauthorized) as excinfo:
        verifier.verify(token)
    assert excinfo.value.message == "Token expired"


@pytest.mark.parametrize("token", [None, "", "not-a-jwt", "a.b.c"])
def test_missing_or_malformed_tokens_fail_closed(service: TokenService, token) -> None:
    with pytest.raises(Unauthorized):
        service.verify(token)


def test_unknown_role_claim_is_rejected(service: TokenService) -> None:
    token = jwt.encode(
        {
            "sub": "u1",
            "email": "u1@example.com",
            "role": "SUPERUSER",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        },
        "tests-secret-key",
        algorithm="HS256",
    )

    with pytest.raises(Unauthorized):
        service.verify(token)


def test_missing_expiry_is_rejected(service: TokenService) -> None:
    token = jwt.encode(
        {"sub": "u1", "email": "u1@example.com", "role": "ADMIN"},
        "tests-secret-key",
        algorithm="HS256",
    )

    with pytest.raises(Unauthorized):
        service.verify(token)


def test_constructor_requires_secret() -> None:
    with pytest.raises(ValueError):
        TokenService("", ttl=timedelta(minutes=5))
