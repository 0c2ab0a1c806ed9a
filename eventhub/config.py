"""Configuration management for the event hub service."""
from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

logger = logging.getLogger("eventhub.config")

DEFAULT_TOKEN_TTL = timedelta(minutes=1440)
DEFAULT_BCRYPT_ROUNDS = 12
DEFAULT_WELCOME_MESSAGE = "Connected to events server"
DEFAULT_SEND_TIMEOUT_SECONDS = 5.0

_ENV_KEYS = {
    "secret_key": "EVENTHUB_SECRET_KEY",
    "token_ttl_minutes": "EVENTHUB_TOKEN_TTL_MINUTES",
    "database_path": "EVENTHUB_DB_PATH",
    "bcrypt_rounds": "EVENTHUB_BCRYPT_ROUNDS",
    "welcome_message": "EVENTHUB_WELCOME_MESSAGE",
    "send_timeout_seconds": "EVENTHUB_SEND_TIMEOUT_SECONDS",
}


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, loaded once at start-up and never mutated."""

    secret_key: str
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    database_path: Optional[Path] = None
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS
    welcome_message: str = DEFAULT_WELCOME_MESSAGE
    send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw configuration values."""

        secret = str(data.get("secret_key") or "").strip()
        if not secret:
            secret = secrets.token_urlsafe(48)
            logger.warning(
                "No signing secret configured; generated a per-process key. Issued tokens"
                " will stop working when the service restarts."
            )

        try:
            ttl_minutes = int(data.get("token_ttl_minutes", DEFAULT_TOKEN_TTL.total_seconds() // 60))
        except (TypeError, ValueError) as exc:
            raise ValueError("token_ttl_minutes must be an integer") from exc
        if ttl_minutes <= 0:
            raise ValueError("token_ttl_minutes must be positive")

        try:
            rounds = int(data.get("bcrypt_rounds", DEFAULT_BCRYPT_ROUNDS))
        except (TypeError, ValueError) as exc:
            raise ValueError("bcrypt_rounds must be an integer") from exc
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")

        raw_db_path = data.get("database_path")
        database_path: Optional[Path] = None
        if raw_db_path:
            candidate = Path(str(raw_db_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)

        welcome = str(data.get("welcome_message") or DEFAULT_WELCOME_MESSAGE)

        try:
            send_timeout = float(data.get("send_timeout_seconds", DEFAULT_SEND_TIMEOUT_SECONDS))
        except (TypeError, ValueError) as exc:
            raise ValueError("send_timeout_seconds must be a number") from exc
        if send_timeout <= 0:
            raise ValueError("send_timeout_seconds must be positive")

        return Settings(
            secret_key=secret,
            token_ttl=timedelta(minutes=ttl_minutes),
            database_path=database_path,
            bcrypt_rounds=rounds,
            welcome_message=welcome,
            send_timeout=send_timeout,
        )


def _read_config_file(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return raw


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from an optional YAML file overlaid with environment variables."""

    env = os.environ if environ is None else environ
    values: Dict[str, object] = {}
    base_path: Path | None = None

    config_file = env.get("EVENTHUB_CONFIG")
    if config_file:
        config_path = Path(config_file).expanduser().resolve(strict=False)
        values.update(_read_config_file(config_path))
        base_path = config_path.parent

    for key, env_name in _ENV_KEYS.items():
        value = env.get(env_name)
        if value is not None and value.strip():
            values[key] = value.strip()

    return Settings.from_dict(values, base_path=base_path)


__all__ = ["Settings", "load_settings"]
