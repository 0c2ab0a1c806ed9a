"""Event storage, ownership, and the approval rule that gates visibility."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import List

from .errors import InvalidInput, NotFound, Unauthorized
from .models import Event, Role, User
from .repository import EventRepository

logger = logging.getLogger("eventhub.events")

_MAX_TITLE_LENGTH = 200
_MAX_DESCRIPTION_LENGTH = 5000
_MAX_LOCATION_LENGTH = 255
_MAX_DATE_LENGTH = 64


def _clean_required(value: object, field: str, max_length: int) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise InvalidInput(f"{field.capitalize()} is required")
    if len(text) > max_length:
        raise InvalidInput(f"{field.capitalize()} is too long")
    return text


def _clean_optional(value: object, field: str, max_length: int) -> str:
    text = str(value).strip() if value is not None else ""
    if len(text) > max_length:
        raise InvalidInput(f"{field.capitalize()} is too long")
    return text


class EventRegistry:
    """Creates events and answers visibility-filtered queries.

    An event is approved at creation iff its organizer is an administrator.
    The only later transition is :meth:`approve`, which can flip ``approved``
    from ``False`` to ``True`` and never back, so what a viewer can see only
    ever grows.
    """

    def __init__(self, repository: EventRepository) -> None:
        self._repository = repository
        self._lock = asyncio.Lock()

    async def create(
        self,
        *,
        title: object,
        description: object,
        date: object,
        location: object,
        organizer: User,
    ) -> Event:
        event = Event(
            id=uuid.uuid4().hex,
            title=_clean_required(title, "title", _MAX_TITLE_LENGTH),
            description=_clean_optional(description, "description", _MAX_DESCRIPTION_LENGTH),
            date=_clean_required(date, "date", _MAX_DATE_LENGTH),
            location=_clean_optional(location, "location", _MAX_LOCATION_LENGTH),
            organizer_id=organizer.id,
            approved=organizer.role is Role.ADMIN,
            created_at=datetime.now(timezone.utc),
        )

        async with self._lock:
            self._repository.add(event)

        logger.info(
            "User %s created event %s (approved=%s)", organizer.id, event.id, event.approved
        )
        return event

    async def list(self, requester: User) -> List[Event]:
        return [event for event in self._repository.list() if event.is_visible_to(requester)]

    async def get(self, event_id: str, requester: User) -> Event:
        event = self._repository.get(event_id)
        if event is None or not event.is_visible_to(requester):
            raise NotFound("Event not found")
        return event

    async def approve(self, event_id: str, approver: User) -> Event:
        """Publish a pending event. Approving twice is harmless."""

        if approver.role is not Role.ADMIN:
            raise Unauthorized("Only administrators may approve events")

        async with self._lock:
            event = self._repository.get(event_id)
            if event is None:
                raise NotFound("Event not found")
            if event.approved:
                return event
            approved = self._repository.update(replace(event, approved=True))

        logger.info("User %s approved event %s", approver.id, approved.id)
        return approved


__all__ = ["EventRegistry"]
