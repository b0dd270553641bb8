from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it's easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    pinata_jwt: str | None = None
    pinata_api_key: str | None = None
    pinata_api_secret: str | None = None
    pinata_api_url: str = "https://api.pinata.cloud"
    ipfs_gateway: str = "gateway.pinata.cloud"
    content_store_timeout: float = 60.0
    max_document_bytes: int = 10 * 1024 * 1024

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def has_pinata_credentials(self) -> bool:
        return bool(self.pinata_jwt) or bool(
            self.pinata_api_key and self.pinata_api_secret
        )


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    timeout_raw = _getenv("CONTENT_STORE_TIMEOUT", "60")
    max_bytes_raw = _getenv("MAX_DOCUMENT_BYTES", str(10 * 1024 * 1024))

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        content_store_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"CONTENT_STORE_TIMEOUT must be a number (got {timeout_raw!r})"
        ) from None
    if content_store_timeout <= 0:
        raise ValueError(
            f"CONTENT_STORE_TIMEOUT must be positive (got {timeout_raw!r})"
        )

    try:
        max_document_bytes = int(max_bytes_raw)
    except ValueError:
        raise ValueError(
            f"MAX_DOCUMENT_BYTES must be an integer (got {max_bytes_raw!r})"
        ) from None

    gateway = _getenv("IPFS_GATEWAY", "gateway.pinata.cloud")
    # Accept a pasted URL as well as a bare host.
    gateway = gateway.removeprefix("https://").removeprefix("http://").rstrip("/")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv("LOG_JSON", "false").lower() in _TRUTHY,
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        pinata_jwt=_getenv("PINATA_JWT", "") or None,
        pinata_api_key=_getenv("PINATA_API_KEY", "") or None,
        pinata_api_secret=_getenv("PINATA_API_SECRET", "") or None,
        pinata_api_url=_getenv("PINATA_API_URL", "https://api.pinata.cloud").rstrip(
            "/"
        ),
        ipfs_gateway=gateway,
        content_store_timeout=content_store_timeout,
        max_document_bytes=max_document_bytes,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
