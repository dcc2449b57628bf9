"""Parley application configuration.

Loads settings from two YAML files:
  * parley.settings.yaml: non-secret configuration
  * parley.secrets.yaml: secrets (never committed)

Either path can be overridden with the PARLEY_SETTINGS / PARLEY_SECRETS
environment variables.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("parley.settings.yaml")
SECRETS_FILE  = Path("parley.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 8000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class AuthSettings(BaseModel):
    token_expire_minutes: int       = 60
    # Usernames that receive moderator rights when they log in.
    moderators:           List[str] = Field(default_factory=list)


class ChatSettings(BaseModel):
    """Timers and limits for the real-time core."""
    typing_timeout_seconds: float = 3.0
    delivery_delay_seconds: float = 1.0
    send_timeout_seconds:   float = 5.0
    max_content_length:     int   = 2000
    max_emoji_length:       int   = 32
    default_page_size:      int   = 20
    max_page_size:          int   = 100


class StorageSettings(BaseModel):
    db_path:             str = "parley.duckdb"
    upload_dir:          str = "uploads"
    max_file_size_bytes: int = 20 * 1024 * 1024


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    auth:    AuthSettings    = Field(default_factory=AuthSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    secrets: Secrets         = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_path = settings_path or Path(os.environ.get("PARLEY_SETTINGS", SETTINGS_FILE))
    secrets_path  = secrets_path or Path(os.environ.get("PARLEY_SECRETS", SECRETS_FILE))

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, db=%s, typing_timeout=%ss, delivery_delay=%ss)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.storage.db_path,
        app_settings.chat.typing_timeout_seconds,
        app_settings.chat.delivery_delay_seconds,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(config: AppSettings) -> None:
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
