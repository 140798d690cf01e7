"""structlog setup for the service.

Every record carries the service identity and, inside a request, the
request id bound by RequestMetadata. Production always renders JSON; other
environments follow ``log_json``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any

import structlog

from gatekeeper.utils.sanitize import strip_control_chars

if TYPE_CHECKING:
    from gatekeeper.config.loader import GatekeeperSettings

# Chatty third-party loggers; the pipeline writes its own access log
_QUIET_LOGGERS = ("uvicorn.access", "redis", "asyncio")


class ServiceFields:
    """Processor stamping service name, version and environment on each record."""

    def __init__(self, version: str, environment: str) -> None:
        self._fields = {"service": "gatekeeper", "version": version, "environment": environment}

    def __call__(self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]):
        for key, value in self._fields.items():
            event_dict.setdefault(key, value)
        return event_dict


def scrub_control_chars(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]):
    """Strip control characters from string fields so one record stays one line.

    Client values are already clamped where they are logged; this catches
    whatever reaches a record unclamped (exception messages, header values).
    """
    for key, value in event_dict.items():
        if isinstance(value, str) and key != "exception":
            event_dict[key] = strip_control_chars(value)
    return event_dict


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def set_log_level(name: str) -> None:
    """Apply ``name`` to the root logger; used at startup and on reload."""
    logging.getLogger().setLevel(_level(name))


def setup_logging(settings: GatekeeperSettings) -> None:
    """Route structlog and stdlib records through one stdout handler."""
    json_output = settings.log_json or settings.is_production
    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        ServiceFields(settings.version, settings.environment),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        scrub_control_chars,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        # Records from plain stdlib loggers (uvicorn, redis) get the same fields
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    set_log_level(settings.log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
