"""Health, readiness and liveness endpoints."""

from __future__ import annotations

import os
import platform
import resource
import sys
import time

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from gatekeeper.api.routes import READ_METHODS
from gatekeeper.errors import utc_timestamp
from gatekeeper.middleware.rate_limiter import RateLimiter

logger = structlog.get_logger()
router = APIRouter()

# Peak RSS above this is reported as WARNING
_MEMORY_WARNING_MB = 512


def _peak_rss_mb() -> int:
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is kilobytes on Linux, bytes on macOS
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return round(usage / divisor)


def _uptime(request: Request) -> float:
    return time.monotonic() - request.app.state.started_at


@router.api_route("/health", methods=READ_METHODS)
async def health(request: Request):
    """Basic health check."""
    settings = request.app.state.settings
    cpu = os.times()
    return {
        "status": "UP",
        "message": "System operating normally",
        "timestamp": utc_timestamp(),
        "uptime": int(_uptime(request)),
        "environment": settings.environment,
        "version": settings.version,
        "memory": {
            "peak": f"{_peak_rss_mb()} MB",
        },
        "system": {
            "platform": sys.platform,
            "pythonVersion": platform.python_version(),
            "pid": os.getpid(),
            "cpuUsage": {"user": cpu.user, "system": cpu.system},
        },
        "checks": {
            "rateLimitBackend": settings.rate_limit_backend,
        },
    }


@router.api_route("/health/detailed", methods=READ_METHODS)
async def health_detailed(request: Request):
    """Per-service status plus raw metrics."""
    peak_mb = _peak_rss_mb()
    uptime = _uptime(request)
    return {
        "status": "UP",
        "timestamp": utc_timestamp(),
        "services": {
            "application": "UP",
            "memory": "UP" if peak_mb < _MEMORY_WARNING_MB else "WARNING",
            "uptime": "UP" if uptime >= 0 else "DOWN",
        },
        "metrics": {
            "uptime": round(uptime, 3),
            "peakMemoryMb": peak_mb,
            "platform": sys.platform,
            "pythonVersion": platform.python_version(),
        },
    }


@router.api_route("/ready", methods=READ_METHODS)
async def ready(request: Request):
    """200 once the pipeline is built and its rate-limit store answers."""
    pipeline = getattr(request.app.state, "pipeline", None)
    limiter = pipeline.get_middleware(RateLimiter) if pipeline is not None else None
    pipeline_ok = limiter is not None
    store_ok = pipeline_ok and await limiter.store.ping()

    if pipeline_ok and store_ok:
        return {
            "status": "READY",
            "message": "Application ready to receive traffic",
            "timestamp": utc_timestamp(),
        }

    logger.warning("not_ready", pipeline=pipeline_ok, rate_store=store_ok)
    return JSONResponse(
        status_code=503,
        content={
            "status": "NOT_READY",
            "message": "Application still initializing",
            "pipeline": "up" if pipeline_ok else "down",
            "rateLimitStore": "up" if store_ok else "down",
            "timestamp": utc_timestamp(),
        },
    )


@router.api_route("/live", methods=READ_METHODS)
async def live():
    return {
        "status": "ALIVE",
        "message": "Application responding",
        "timestamp": utc_timestamp(),
        "pid": os.getpid(),
    }
