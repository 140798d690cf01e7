"""Application and security API endpoints."""

from __future__ import annotations

import platform
import time

import structlog
from fastapi import APIRouter, Depends, Request

from gatekeeper.api.dependencies import declared_rules, get_request_context
from gatekeeper.errors import utc_timestamp
from gatekeeper.middleware.pipeline import RequestContext
from gatekeeper.security.classifier import detect_sql_injection, detect_xss, validate_input
from gatekeeper.security.sanitizer import sanitize
from gatekeeper.security.status import (
    DEVSECOPS_PRACTICES,
    SECURITY_FEATURES,
    check_security_headers,
    sql_injection_self_test,
    xss_self_test,
)
from gatekeeper.utils.sanitize import log_safe
from gatekeeper.validation.rules import length, one_of, required

logger = structlog.get_logger()

router = APIRouter()
api_router = APIRouter(prefix="/api", tags=["security"])

# HEAD is answered wherever GET is
READ_METHODS = ["GET", "HEAD"]

AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /health",
    "GET /api/info",
    "GET /api/security",
    "POST /api/validate",
]

VALIDATE_RULES = (
    required("data", "data is required"),
    length("data", 1, 1000, "data must be between 1 and 1000 characters"),
    one_of("type", ("text", "email", "url"), "type must be text, email or url", optional=True),
)


@router.api_route("/", methods=READ_METHODS)
async def app_info(request: Request):
    """Service description and enabled protections."""
    settings = request.app.state.settings
    return {
        "message": "Gatekeeper request security layer",
        "technology": "Python + FastAPI",
        "version": settings.version,
        "environment": settings.environment,
        "timestamp": utc_timestamp(),
        "security": {
            "securityHeaders": "enabled",
            "cors": "configured",
            "rateLimit": "active",
            "inputValidation": "enabled",
            "compression": "enabled",
        },
        "features": [
            "Secure REST API",
            "Health checks",
            "Structured logging",
            "Rate limiting",
            "Input validation",
            "Error handling",
        ],
    }


@api_router.api_route("/info", methods=READ_METHODS)
async def api_info():
    return {
        "message": "API protected by the security middleware pipeline",
        "version": "1.0.0",
        "documentation": "/docs",
        "security": {
            "features": list(SECURITY_FEATURES),
            "practices": list(DEVSECOPS_PRACTICES),
        },
        "endpoints": [
            {"method": "GET", "path": "/api/info", "description": "API information"},
            {"method": "GET", "path": "/api/security", "description": "Security status"},
            {"method": "POST", "path": "/api/validate", "description": "Validate input"},
            {"method": "GET", "path": "/api/demo", "description": "Demo endpoint"},
        ],
        "timestamp": utc_timestamp(),
    }


@api_router.api_route("/security", methods=READ_METHODS)
async def security_status(request: Request):
    """Run the classifier self-tests and report header policy compliance."""
    xss_ok = xss_self_test()
    sql_ok = sql_injection_self_test()
    policy = request.app.state.header_policy
    return {
        "status": "SECURE" if (xss_ok and sql_ok) else "DEGRADED",
        "message": "All security measures active" if (xss_ok and sql_ok) else "Self-test failure",
        "features": {
            "securityHeaders": "enabled - HTTP security headers",
            "cors": "configured - cross-origin access control",
            "rateLimit": "active - per-client request windows",
            "inputValidation": "enabled - input validation and sanitization",
            "compression": "enabled - response compression",
            "logging": "configured - structured access log",
        },
        "checks": {
            "xssProtection": xss_ok,
            "sqlInjectionProtection": sql_ok,
            "headersSecurity": check_security_headers(policy.names),
        },
        "lastUpdated": utc_timestamp(),
    }


@api_router.post("/validate")
async def validate(
    context: RequestContext = Depends(
        declared_rules(*VALIDATE_RULES, raw=True, message="Invalid input data")
    ),
):
    """Classify the submitted ``data`` as received and show its sanitized form."""
    data = context.raw_body["data"]
    data_type = context.raw_body.get("type") or "text"

    return {
        "message": "Validation completed",
        "result": {
            "original": data,
            "sanitized": sanitize(data),
            "isValid": validate_input(data),
            "type": data_type,
            "checks": {
                "xssAttempt": detect_xss(data),
                "sqlInjectionAttempt": detect_sql_injection(data),
                "length": len(data),
                "encoding": "UTF-8",
            },
            "timestamp": utc_timestamp(),
        },
    }


@api_router.api_route("/demo", methods=READ_METHODS)
async def demo(request: Request, context: RequestContext = Depends(get_request_context)):
    """Echo request metadata, server info and the caller's remaining quota."""
    settings = request.app.state.settings
    client = request.client.host if request.client else "unknown"
    logger.info("demo_called", client=log_safe(client))
    return {
        "message": "Demo endpoint working",
        "request": {
            "ip": context.client_id or client,
            "userAgent": request.headers.get("user-agent"),
            "method": request.method,
            "url": str(request.url.path),
            "query": context.query,
            "headers": {
                "content-type": request.headers.get("content-type"),
                "accept": request.headers.get("accept"),
                "accept-language": request.headers.get("accept-language"),
            },
        },
        "server": {
            "timestamp": utc_timestamp(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "environment": settings.environment,
            "pythonVersion": platform.python_version(),
        },
        "security": {
            "rateLimitRemaining": context.extra.get("rate_limit_remaining", "N/A"),
            "secureHeaders": "applied",
            "inputValidation": "active",
        },
    }
