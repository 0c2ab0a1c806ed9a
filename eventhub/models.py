"""Domain models shared by the registries, the gateway, and the broadcaster."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class Role(str, Enum):
    """Account roles. Only administrators publish events without review."""

    ADMIN = "ADMIN"
    ORGANIZER = "ORGANIZER"
    ATTENDEE = "ATTENDEE"

    @classmethod
    def parse(cls, value: object) -> "Role":
        if isinstance(value, Role):
            return value
        text = str(value or "").strip().upper()
        try:
            return cls(text)
        except ValueError as exc:
            allowed = ", ".join(role.value for role in cls)
            raise ValueError(f"Role must be one of: {allowed}") from exc


@dataclass(frozen=True)
class User:
    """Represents an account stored in the user repository."""

    id: str
    email: str
    password_hash: str
    role: Role
    created_at: datetime

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role.value,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Event:
    """An event submitted by a user; unapproved events are visible to their organizer only."""

    id: str
    title: str
    description: str
    date: str
    location: str
    organizer_id: str
    approved: bool
    created_at: datetime

    def is_visible_to(self, viewer: User) -> bool:
        return self.approved or self.organizer_id == viewer.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "date": self.date,
            "location": self.location,
            "organizerId": self.organizer_id,
            "approved": self.approved,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class TokenClaims:
    """Identity carried by a verified session token."""

    user_id: str
    email: str
    role: Role
    expires_at: datetime


__all__ = ["Role", "User", "Event", "TokenClaims"]
