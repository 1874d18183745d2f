"""Environment configuration for the SQL tunnel service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

from tunnel.errors import ConfigError

REQUIRED_ENV_VARS = ["DB_HOST", "DB_USER", "DB_PASSWORD", "DB_NAME", "SERVER_PORT"]

DEFAULT_DB_PORT = 3306
DEFAULT_CONNECTION_LIMIT = 10
MAX_QUERY_LENGTH = 100_000
MAX_CONTENT_LENGTH = 50 * 1024 * 1024


def _environment_name(environ: Mapping[str, str]) -> str:
    return (
        environ.get("APP_ENV")
        or environ.get("ENVIRONMENT")
        or environ.get("FLASK_ENV")
        or environ.get("NODE_ENV")
        or "production"
    )


def _int_setting(environ: Mapping[str, str], name: str, default: Optional[int] = None) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        if default is None:
            raise ConfigError(missing=[name])
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class TunnelConfig:
    db_host: str
    db_user: str
    db_password: str
    db_name: str
    server_port: int
    db_port: int = DEFAULT_DB_PORT
    server_host: str = "127.0.0.1"
    connection_limit: int = DEFAULT_CONNECTION_LIMIT
    frontend_origin: str = "*"
    log_level: str = "INFO"
    environment: str = "production"

    @property
    def expose_errors(self) -> bool:
        return self.environment.lower() == "development"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TunnelConfig":
        """Build the config from ``environ`` (defaults to ``os.environ``).

        Every missing mandatory variable is collected before failing so the
        operator sees the whole list at once.
        """

        environ = os.environ if environ is None else environ
        missing: List[str] = [name for name in REQUIRED_ENV_VARS if not (environ.get(name) or "").strip()]
        if missing:
            raise ConfigError(missing=missing)

        return cls(
            db_host=environ["DB_HOST"].strip(),
            db_user=environ["DB_USER"].strip(),
            db_password=environ["DB_PASSWORD"],
            db_name=environ["DB_NAME"].strip(),
            server_port=_int_setting(environ, "SERVER_PORT"),
            db_port=_int_setting(environ, "DB_PORT", DEFAULT_DB_PORT),
            server_host=(environ.get("SERVER_HOST") or "127.0.0.1").strip(),
            connection_limit=_int_setting(environ, "DB_CONNECTION_LIMIT", DEFAULT_CONNECTION_LIMIT),
            frontend_origin=(environ.get("FRONTEND_ORIGIN") or "*").strip(),
            log_level=(environ.get("LOG_LEVEL") or "INFO").strip().upper(),
            environment=_environment_name(environ),
        )
