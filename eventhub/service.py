"""HTTP and WebSocket API for the event hub."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field
from starlette.websockets import WebSocketDisconnect

from .config import Settings, load_settings
from .errors import EventHubError, Internal, InvalidInput, NotFound, Unauthorized
from .events import EventRegistry
from .models import User
from .notifications import LoggingNotifier, Notifier
from .passwords import PasswordHasher
from .realtime import Broadcaster, Connection
from .repository import (
    Database,
    EventRepository,
    InMemoryEventRepository,
    InMemoryUserRepository,
    UserRepository,
)
from .tokens import TokenService
from .users import UserDirectory

logger = logging.getLogger("eventhub.service")


class SignupRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class EventCreateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    date: Optional[str] = None
    location: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    role: str
    created_at: str = Field(alias="createdAt")


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


class EventResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str
    date: str
    location: str
    organizer_id: str = Field(alias="organizerId")
    approved: bool
    created_at: str = Field(alias="createdAt")


def _error_response(exc: EventHubError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(EventHubError)
    async def handle_eventhub_error(request: Request, exc: EventHubError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
        return _error_response(InvalidInput(str(message)))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return _error_response(Internal())


def _build_auth_dependency(tokens: TokenService, directory: UserDirectory):
    bearer_security = HTTPBearer(auto_error=False)

    def dependency(
        bearer: HTTPAuthorizationCredentials | None = Depends(bearer_security),
    ) -> User:
        if bearer is None or bearer.scheme.lower() != "bearer":
            raise Unauthorized("No token")

        claims = tokens.verify(bearer.credentials)
        try:
            return directory.get(claims.user_id)
        except NotFound as exc:
            raise Unauthorized("Invalid token") from exc

    return dependency


def register_api_routes(
    app: FastAPI,
    *,
    tokens: TokenService,
    directory: UserDirectory,
    events: EventRegistry,
    broadcaster: Broadcaster,
    notifier: Notifier,
    current_user: Callable[..., User],
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, Any]:
        return {"status": "ok", "connections": len(broadcaster.registry)}

    @app.post("/signup", response_model=AuthResponse)
    async def signup(request: SignupRequest) -> Dict[str, Any]:
        user = await directory.register(
            request.email or "",
            request.password or "",
            request.role or "ATTENDEE",
        )

        try:
            await notifier.send_welcome(user)
        except Exception:
            logger.exception("Failed to send welcome notification to user %s", user.id)

        return {"user": user.to_public_dict(), "token": tokens.sign(user)}

    @app.post("/login", response_model=AuthResponse)
    async def login(request: LoginRequest) -> Dict[str, Any]:
        user = await directory.authenticate(request.email or "", request.password or "")
        logger.info("User %s signed in", user.id)
        return {"user": user.to_public_dict(), "token": tokens.sign(user)}

    @app.get("/profile", response_model=UserResponse)
    async def profile(user: User = Depends(current_user)) -> Dict[str, Any]:
        return user.to_public_dict()

    @app.get("/events", response_model=List[EventResponse])
    async def list_events(user: User = Depends(current_user)) -> List[Dict[str, Any]]:
        visible = await events.list(user)
        return [event.to_dict() for event in visible]

    @app.post("/events", response_model=EventResponse)
    async def create_event(
        request: EventCreateRequest,
        user: User = Depends(current_user),
    ) -> Dict[str, Any]:
        event = await events.create(
            title=request.title,
            description=request.description,
            date=request.date,
            location=request.location,
            organizer=user,
        )
        delivered = await broadcaster.broadcast_event_update(event, "CREATED")
        logger.info("Broadcast creation of event %s to %d connection(s)", event.id, delivered)
        return event.to_dict()

    @app.get("/events/{event_id}", response_model=EventResponse)
    async def get_event(event_id: str, user: User = Depends(current_user)) -> Dict[str, Any]:
        event = await events.get(event_id, user)
        return event.to_dict()


def register_realtime_routes(
    app: FastAPI,
    *,
    tokens: TokenService,
    broadcaster: Broadcaster,
    welcome_message: str,
) -> None:
    """Expose the WebSocket channel that receives event notifications."""

    registry = broadcaster.registry

    @app.websocket("/ws")
    async def events_socket(websocket: WebSocket, token: Optional[str] = None) -> None:
        claims = None
        if token is not None:
            try:
                claims = tokens.verify(token)
            except Unauthorized:
                logger.warning("Rejected realtime connection with an invalid token")
                await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
                return

        await websocket.accept()
        connection = Connection(websocket)
        registry.register(connection)
        try:
            if claims is not None:
                registry.bind(connection.id, claims.user_id, claims.role)
            await websocket.send_json(
                {
                    "type": "WELCOME",
                    "message": welcome_message,
                    "connectionId": connection.id,
                }
            )
            # Inbound messages are not part of the protocol yet; drain until the client leaves.
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        finally:
            registry.unregister(connection)


def _build_repositories(settings: Settings) -> tuple[UserRepository, EventRepository]:
    if settings.database_path is None:
        return InMemoryUserRepository(), InMemoryEventRepository()
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Using SQLite store at %s", settings.database_path)
    return database.users, database.events


def create_app(
    *,
    settings: Settings | None = None,
    users: UserRepository | None = None,
    events: EventRepository | None = None,
    broadcaster: Broadcaster | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the event hub."""

    app_settings = settings or load_settings()
    if users is None or events is None:
        default_users, default_events = _build_repositories(app_settings)
        users = users or default_users
        events = events or default_events

    tokens = TokenService(app_settings.secret_key, ttl=app_settings.token_ttl)
    hasher = PasswordHasher(rounds=app_settings.bcrypt_rounds)
    directory = UserDirectory(users, hasher)
    event_registry = EventRegistry(events)
    app_broadcaster = broadcaster or Broadcaster(send_timeout=app_settings.send_timeout)
    app_notifier = notifier or LoggingNotifier()

    app = FastAPI(
        title="Event Hub API",
        version="0.1.0",
        description="Event publishing with role-gated approval and realtime notifications.",
    )

    app.state.settings = app_settings
    app.state.tokens = tokens
    app.state.directory = directory
    app.state.events = event_registry
    app.state.broadcaster = app_broadcaster

    _register_error_handlers(app)
    register_api_routes(
        app,
        tokens=tokens,
        directory=directory,
        events=event_registry,
        broadcaster=app_broadcaster,
        notifier=app_notifier,
        current_user=_build_auth_dependency(tokens, directory),
    )
    register_realtime_routes(
        app,
        tokens=tokens,
        broadcaster=app_broadcaster,
        welcome_message=app_settings.welcome_message,
    )

    return app


__all__ = ["create_app", "register_api_routes", "register_realtime_routes"]
