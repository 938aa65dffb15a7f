"""
Settings — process configuration from environment variables.

    settings = Settings.from_env()
    app = create_app(settings)
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Runtime configuration.

    Defaults match a local single-process run: in-memory SQLite, collaborators
    on localhost, 24h idempotency TTL, hourly sweep.
    """

    database_url: str = "sqlite+aiosqlite:///:memory:"
    inventory_base_url: str = "http://localhost:8081"
    payment_base_url: str = "http://localhost:8082"
    payment_currency: str = "JPY"
    idempotency_ttl_hours: float = 24.0
    cleanup_interval_seconds: float = 3600.0
    collaborator_timeout_seconds: float = 5.0
    store_timeout_seconds: float = 5.0
    retry_after_seconds: float = 1.0
    log_level: str = "INFO"
    log_json: bool = True
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> Settings:
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            inventory_base_url=os.getenv("INVENTORY_BASE_URL", defaults.inventory_base_url),
            payment_base_url=os.getenv("PAYMENT_BASE_URL", defaults.payment_base_url),
            payment_currency=os.getenv("PAYMENT_CURRENCY", defaults.payment_currency),
            idempotency_ttl_hours=_env_float("IDEMPOTENCY_TTL_HOURS", defaults.idempotency_ttl_hours),
            cleanup_interval_seconds=_env_float(
                "CLEANUP_INTERVAL_SECONDS", defaults.cleanup_interval_seconds
            ),
            collaborator_timeout_seconds=_env_float(
                "COLLABORATOR_TIMEOUT_SECONDS", defaults.collaborator_timeout_seconds
            ),
            store_timeout_seconds=_env_float("STORE_TIMEOUT_SECONDS", defaults.store_timeout_seconds),
            retry_after_seconds=_env_float("RETRY_AFTER_SECONDS", defaults.retry_after_seconds),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            log_json=os.getenv("LOG_FORMAT", "json").lower() == "json",
            host=os.getenv("HOST", defaults.host),
            port=_env_int("PORT", defaults.port),
        )


__all__ = ("Settings",)
