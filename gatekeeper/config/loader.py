"""Env var config loading with pydantic-settings."""

from __future__ import annotations

import signal
from collections.abc import Callable
from pathlib import Path

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

from gatekeeper.config.defaults import (
    PRODUCTION,
    WINDOW_SECONDS,
    default_cors_origins,
    default_rate_limit,
)

logger = structlog.get_logger()

DEFAULT_HEADER_POLICY = Path(__file__).parent / "header_policy.yaml"


class GatekeeperSettings(BaseSettings):
    """Service configuration, overridden by GATEKEEPER_* env vars."""

    model_config = SettingsConfigDict(
        env_prefix="GATEKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    listen_port: int = 3000
    log_level: str = "info"
    log_json: bool = True
    version: str = "1.0.0"

    # Rate limiting
    rate_limit_window_seconds: int = WINDOW_SECONDS
    rate_limit_max: int | None = None  # None: derived from environment
    rate_limit_backend: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379"
    redis_pool_size: int = 10
    # Number of trusted proxies in front of the service. 0 ignores
    # X-Forwarded-For and keys clients by the socket address.
    forwarded_hops: int = 0

    # Security headers
    header_policy_file: str = str(DEFAULT_HEADER_POLICY)
    csp_extra: str = ""

    # CORS; None: derived from environment
    cors_origins: list[str] | None = None

    # Request body limit (10MB default)
    max_body_bytes: int = 10 * 1024 * 1024

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @property
    def effective_rate_limit(self) -> int:
        if self.rate_limit_max is not None:
            return self.rate_limit_max
        return default_rate_limit(self.environment)

    @property
    def allowed_origins(self) -> list[str]:
        if self.cors_origins is not None:
            return self.cors_origins
        return default_cors_origins(self.environment)


_settings: GatekeeperSettings | None = None


def get_settings() -> GatekeeperSettings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def load_settings() -> GatekeeperSettings:
    """Load settings from env vars (env vars override model defaults)."""
    global _settings
    _settings = GatekeeperSettings()
    logger.info(
        "config_loaded",
        environment=_settings.environment,
        rate_limit_max=_settings.effective_rate_limit,
        rate_limit_backend=_settings.rate_limit_backend,
    )
    return _settings


ReloadListener = Callable[[GatekeeperSettings], None]

_reload_listeners: list[ReloadListener] = []


def add_reload_listener(listener: ReloadListener) -> None:
    """Call ``listener`` with the new settings after every reload."""
    _reload_listeners.append(listener)


def reload_settings() -> GatekeeperSettings:
    """Re-read the environment and hand the result to every listener.

    A listener that fails keeps whatever it was running with; the others
    still run.
    """
    settings = load_settings()
    for listener in list(_reload_listeners):
        try:
            listener(settings)
        except Exception:
            logger.exception("config_reload_failed", listener=getattr(listener, "__name__", repr(listener)))
    return settings


def register_reload_handler() -> None:
    """Register SIGHUP handler for hot-reload of configuration."""
    import threading

    if threading.current_thread() is not threading.main_thread():
        logger.debug("skipping_sighup_handler", reason="not main thread")
        return

    def _reload(signum, frame):
        logger.info("config_reload_triggered")
        reload_settings()

    try:
        signal.signal(signal.SIGHUP, _reload)
    except (ValueError, AttributeError):
        logger.debug("skipping_sighup_handler", reason="signal not supported")
