"""Live WebSocket connections and fan-out of event notifications."""
from __future__ import annotations

import json
import logging
import threading
import uuid
from contextlib import suppress
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional

import anyio
from fastapi import WebSocket, status
from starlette.websockets import WebSocketState

from .config import DEFAULT_SEND_TIMEOUT_SECONDS
from .errors import NotFound
from .models import Event, Role

logger = logging.getLogger("eventhub.realtime")


class Connection:
    """A registered WebSocket, optionally bound to an authenticated identity."""

    def __init__(self, websocket: WebSocket, *, connection_id: str | None = None) -> None:
        self.id = connection_id or uuid.uuid4().hex
        self.websocket = websocket
        self.user_id: Optional[str] = None
        self.role: Optional[Role] = None

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def close(self, code: int = status.WS_1011_INTERNAL_ERROR) -> None:
        with suppress(Exception):
            if self.websocket.application_state != WebSocketState.DISCONNECTED:
                await self.websocket.close(code=code)

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, user_id={self.user_id!r})"


class ConnectionRegistry:
    """Thread-safe membership of live connections, indexed by connection id."""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    def register(self, connection: Connection) -> None:
        with self._lock:
            self._connections[connection.id] = connection
            total = len(self._connections)
        logger.info("Realtime connection %s opened (%d live)", connection.id, total)

    def unregister(self, connection: Connection) -> bool:
        """Forget a connection. Returns ``False`` when it was already gone."""

        with self._lock:
            removed = self._connections.pop(connection.id, None)
            total = len(self._connections)
        if removed is None:
            return False
        logger.info("Realtime connection %s closed (%d live)", connection.id, total)
        return True

    def bind(self, connection_id: str, user_id: str, role: Role) -> Connection:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                raise NotFound("Connection not found")
            connection.user_id = user_id
            connection.role = role
        return connection

    def snapshot(self) -> List[Connection]:
        with self._lock:
            return list(self._connections.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        if not isinstance(connection, Connection):
            return False
        with self._lock:
            return connection.id in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(self.snapshot())


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class Broadcaster:
    """Deliver JSON messages to every registered connection, or to one user's."""

    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        *,
        send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS,
    ) -> None:
        if send_timeout <= 0:
            raise ValueError("send_timeout must be positive")
        self._registry = registry or ConnectionRegistry()
        self._send_timeout = send_timeout

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def send_timeout(self) -> float:
        return self._send_timeout

    async def broadcast(
        self, message: Mapping[str, Any], *, exclude: Connection | None = None
    ) -> int:
        targets = self._registry.snapshot()
        if exclude is not None:
            targets = [connection for connection in targets if connection.id != exclude.id]
        return await self._deliver(targets, message)

    async def broadcast_to_user(self, user_id: str, message: Mapping[str, Any]) -> int:
        targets = [
            connection
            for connection in self._registry.snapshot()
            if connection.user_id is not None and connection.user_id == user_id
        ]
        return await self._deliver(targets, message)

    async def broadcast_event_update(self, event: Event, action: str) -> int:
        message_type = "EVENT_CREATED" if action == "CREATED" else "EVENT_UPDATE"
        return await self.broadcast(
            {
                "type": message_type,
                "action": action,
                "event": event.to_dict(),
                "timestamp": _timestamp(),
            }
        )

    async def broadcast_rsvp_update(self, rsvp: Mapping[str, Any], action: str) -> int:
        return await self.broadcast(
            {
                "type": "RSVP_UPDATE",
                "action": action,
                "rsvp": dict(rsvp),
                "timestamp": _timestamp(),
            }
        )

    async def _deliver(self, targets: List[Connection], message: Mapping[str, Any]) -> int:
        if not targets:
            return 0

        data = json.dumps(message, default=str)
        delivered = 0

        async def send_one(connection: Connection) -> None:
            nonlocal delivered
            if not connection.is_open:
                await self._drop(connection)
                return
            try:
                with anyio.fail_after(self._send_timeout):
                    await connection.send_text(data)
            except Exception:
                logger.debug("Dropping connection %s after failed send", connection.id, exc_info=True)
                await self._drop(connection)
                return
            delivered += 1

        async with anyio.create_task_group() as task_group:
            for connection in targets:
                task_group.start_soon(send_one, connection)

        logger.debug("Delivered %s message to %d/%d connections", message.get("type"), delivered, len(targets))
        return delivered

    async def _drop(self, connection: Connection) -> None:
        # Membership is released before the close handshake, which may stall as well.
        self._registry.unregister(connection)
        with anyio.move_on_after(self._send_timeout):
            await connection.close()


__all__ = ["Connection", "ConnectionRegistry", "Broadcaster"]
