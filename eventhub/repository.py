"""Storage backends for users and events.

The registries only talk to the :class:`UserRepository` and
:class:`EventRepository` protocols, so the in-memory store used by default
and in tests can be swapped for the SQLite store without touching business
logic.
"""
from __future__ import annotations

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .errors import Conflict, NotFound
from .models import Event, Role, User


class UserRepository(Protocol):
    def add(self, user: User) -> User: ...

    def get(self, user_id: str) -> Optional[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def list(self) -> List[User]: ...


class EventRepository(Protocol):
    def add(self, event: Event) -> Event: ...

    def get(self, event_id: str) -> Optional[Event]: ...

    def update(self, event: Event) -> Event: ...

    def list(self) -> List[Event]: ...


class InMemoryUserRepository:
    """Users kept in process memory, keyed by id with an email index."""

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._by_email: Dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, user: User) -> User:
        with self._lock:
            if user.email in self._by_email:
                raise Conflict("User already exists")
            self._users[user.id] = user
            self._by_email[user.email] = user.id
        return user

    def get(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._by_email.get(email)
            return self._users.get(user_id) if user_id is not None else None

    def list(self) -> List[User]:
        with self._lock:
            return list(self._users.values())


class InMemoryEventRepository:
    """Events kept in process memory; dict insertion order is creation order."""

    def __init__(self) -> None:
        self._events: Dict[str, Event] = {}
        self._lock = threading.Lock()

    def add(self, event: Event) -> Event:
        with self._lock:
            if event.id in self._events:
                raise Conflict("Event already exists")
            self._events[event.id] = event
        return event

    def get(self, event_id: str) -> Optional[Event]:
        with self._lock:
            return self._events.get(event_id)

    def update(self, event: Event) -> Event:
        with self._lock:
            if event.id not in self._events:
                raise NotFound("Event not found")
            self._events[event.id] = event
        return event

    def list(self) -> List[Event]:
        with self._lock:
            return list(self._events.values())


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


class Database:
    """SQLite-backed store implementing both repository protocols."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path
        self.users = _SQLiteUserRepository(self)
        self.events = _SQLiteEventRepository(self)

    @property
    def path(self) -> Path:
        return self._path

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self.connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS events (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    date TEXT NOT NULL,
                    location TEXT NOT NULL DEFAULT '',
                    organizer_id TEXT NOT NULL REFERENCES users(id),
                    approved INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_events_organizer_id ON events(organizer_id);
                """
            )


class _SQLiteUserRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def add(self, user: User) -> User:
        with self._db.connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, email, password_hash, role, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        user.id,
                        user.email,
                        user.password_hash,
                        user.role.value,
                        _serialize_datetime(user.created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise Conflict("User already exists") from exc
        return user

    def get(self, user_id: str) -> Optional[User]:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def find_by_email(self, email: str) -> Optional[User]:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return self._row_to_user(row) if row else None

    def list(self) -> List[User]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at").fetchall()
        return [self._row_to_user(row) for row in rows]

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            role=Role(row["role"]),
            created_at=_parse_datetime(row["created_at"]),
        )


class _SQLiteEventRepository:
    def __init__(self, database: Database) -> None:
        self._db = database

    def add(self, event: Event) -> Event:
        with self._db.connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO events (
                        id, title, description, date, location, organizer_id, approved, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.id,
                        event.title,
                        event.description,
                        event.date,
                        event.location,
                        event.organizer_id,
                        int(event.approved),
                        _serialize_datetime(event.created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise Conflict("Event already exists") from exc
        return event

    def get(self, event_id: str) -> Optional[Event]:
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        return self._row_to_event(row) if row else None

    def update(self, event: Event) -> Event:
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE events
                SET title = ?, description = ?, date = ?, location = ?, approved = ?
                WHERE id = ?
                """,
                (
                    event.title,
                    event.description,
                    event.date,
                    event.location,
                    int(event.approved),
                    event.id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFound("Event not found")
        return event

    def list(self) -> List[Event]:
        with self._db.connect() as conn:
            rows = conn.execute("SELECT * FROM events ORDER BY seq").fetchall()
        return [self._row_to_event(row) for row in rows]

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            date=row["date"],
            location=row["location"],
            organizer_id=row["organizer_id"],
            approved=bool(row["approved"]),
            created_at=_parse_datetime(row["created_at"]),
        )


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "eventhub.sqlite3").resolve(strict=False)


__all__ = [
    "UserRepository",
    "EventRepository",
    "InMemoryUserRepository",
    "InMemoryEventRepository",
    "Database",
    "resolve_database_path",
]
