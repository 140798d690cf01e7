"""FastAPI application wiring the security pipeline in front of the routes."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from gatekeeper.api.routes import AVAILABLE_ENDPOINTS, api_router, router as app_router
from gatekeeper.config.defaults import CORS_HEADERS, CORS_METHODS
from gatekeeper.config.loader import (
    GatekeeperSettings,
    add_reload_listener,
    get_settings,
    register_reload_handler,
)
from gatekeeper.errors import (
    ValidationFailed,
    internal_error_body,
    not_found_body,
    validation_failed_body,
)
from gatekeeper.health import router as health_router
from gatekeeper.logging_config import set_log_level, setup_logging
from gatekeeper.middleware.pipeline import MiddlewarePipeline, RequestContext
from gatekeeper.middleware.rate_limiter import RateLimitConfig, RateLimiter
from gatekeeper.middleware.request_metadata import RequestMetadata
from gatekeeper.middleware.request_sanitizer import RequestSanitizer
from gatekeeper.middleware.security_headers import HeaderPolicy, SecurityHeaders, load_header_policy
from gatekeeper.security.status import verify_registry
from gatekeeper.store.windows import MemoryWindowStore, RedisWindowStore, WindowStore

logger = structlog.get_logger()


def _build_store(settings: GatekeeperSettings) -> WindowStore:
    if settings.rate_limit_backend == "redis":
        return RedisWindowStore(
            settings.rate_limit_window_seconds,
            settings.redis_url,
            pool_size=settings.redis_pool_size,
        )
    if settings.rate_limit_backend != "memory":
        raise RuntimeError(f"Unknown rate limit backend: {settings.rate_limit_backend}")
    return MemoryWindowStore(settings.rate_limit_window_seconds)


def build_pipeline(
    settings: GatekeeperSettings,
    policy: HeaderPolicy,
    store: WindowStore | None = None,
) -> MiddlewarePipeline:
    """Build the ordered middleware pipeline.

    RequestMetadata at position 0:
    - process_request stamps the request id before anything logs
    - process_response runs last (X-Response-Time is the final header set)
    RateLimiter at position 1: rejected clients never get their body parsed.
    """
    rate_config = RateLimitConfig(
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.effective_rate_limit,
        forwarded_hops=settings.forwarded_hops,
    )
    store = store if store is not None else _build_store(settings)
    pipeline = MiddlewarePipeline(debug=not settings.is_production)
    pipeline.add(RequestMetadata())                          # 0: request id, timing
    pipeline.add(RateLimiter(rate_config, store))            # 1: admission
    pipeline.add(SecurityHeaders(policy))                    # 2: header policy
    pipeline.add(RequestSanitizer(settings.max_body_bytes))  # 3: parse + sanitize input
    return pipeline


# Settings the running counter store was built from
_STORE_FIELDS = ("rate_limit_backend", "rate_limit_window_seconds", "redis_url", "redis_pool_size")


def apply_settings(app: FastAPI, settings: GatekeeperSettings) -> None:
    """Swap in a pipeline built from reloaded ``settings``.

    The counter store is carried over so open windows keep counting; store
    settings and CORS origins only change on restart. Raises (and leaves the
    running pipeline in place) if the new header policy cannot be loaded.
    """
    current: GatekeeperSettings = app.state.settings
    pinned = {
        name: getattr(current, name)
        for name in _STORE_FIELDS
        if getattr(settings, name) != getattr(current, name)
    }
    if pinned:
        logger.warning("config_reload_restart_required", settings=sorted(pinned))
        settings = settings.model_copy(update=pinned)

    policy = load_header_policy(settings.header_policy_file, settings.csp_extra)
    limiter = app.state.pipeline.get_middleware(RateLimiter)
    store = limiter.store if limiter is not None else None
    pipeline = build_pipeline(settings, policy, store=store)

    app.state.settings = settings
    app.state.header_policy = policy
    app.state.pipeline = pipeline
    set_log_level(settings.log_level)
    logger.info(
        "config_reloaded",
        environment=settings.environment,
        rate_limit_max=settings.effective_rate_limit,
        forwarded_hops=settings.forwarded_hops,
    )


def create_app(settings: GatekeeperSettings | None = None) -> FastAPI:
    """Create the application.

    Raises RuntimeError if the pattern registry self-check or the header
    policy fails, so a broken build never starts serving. The pipeline and
    settings live on ``app.state`` and are replaced as a unit on SIGHUP (see
    apply_settings); each request uses the pair it started with.
    """
    settings = settings or get_settings()

    verify_registry()
    policy = load_header_policy(settings.header_policy_file, settings.csp_extra)
    pipeline = build_pipeline(settings, policy)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle."""
        setup_logging(app.state.settings)
        register_reload_handler()

        store = app.state.pipeline.get_middleware(RateLimiter).store
        # Non-fatal: the limiter fails closed while the store is down
        await store.connect()

        logger.info(
            "gatekeeper_started",
            environment=settings.environment,
            port=settings.listen_port,
            rate_limit_max=settings.effective_rate_limit,
            rate_limit_window=settings.rate_limit_window_seconds,
            rate_limit_backend=settings.rate_limit_backend,
        )

        yield

        await app.state.pipeline.get_middleware(RateLimiter).store.close()
        logger.info("gatekeeper_stopped")

    debug = not settings.is_production
    app = FastAPI(
        title="Gatekeeper",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if debug else None,
    )
    app.state.settings = settings
    app.state.header_policy = policy
    app.state.pipeline = pipeline
    app.state.started_at = time.monotonic()

    def _on_reload(new_settings: GatekeeperSettings) -> None:
        apply_settings(app, new_settings)

    add_reload_listener(_on_reload)

    # Innermost first: compression, then CORS, then the security pipeline
    # (outermost, so it sees every response including CORS preflights).
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=CORS_METHODS,
        allow_headers=CORS_HEADERS,
    )

    @app.middleware("http")
    async def security_pipeline(request: Request, call_next):
        active: MiddlewarePipeline = request.app.state.pipeline
        expose_errors = not request.app.state.settings.is_production
        context = RequestContext()
        request.state.context = context

        short_circuit = await active.process_request(request, context)
        if short_circuit is not None:
            # Short-circuit responses still need response stages
            # (rate-limit headers, security headers, timing)
            return await active.process_response(short_circuit, context)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("request_failed", path=request.url.path, method=request.method)
            response = JSONResponse(
                internal_error_body(request, context.request_id, exc, debug=expose_errors),
                status_code=500,
            )
        return await active.process_response(response, context)

    @app.exception_handler(ValidationFailed)
    async def validation_failed(request: Request, exc: ValidationFailed):
        logger.info(
            "validation_failed",
            path=request.url.path,
            fields=[error.field for error in exc.errors],
        )
        return JSONResponse(validation_failed_body(exc), status_code=400)

    app.include_router(health_router)
    app.include_router(app_router)
    app.include_router(api_router)

    # Registered last so every concrete route matches first
    @app.api_route(
        "/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
        include_in_schema=False,
    )
    async def not_found(request: Request, path: str):
        return JSONResponse(not_found_body(request, AVAILABLE_ENDPOINTS), status_code=404)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve ``app`` with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.listen_port, log_config=None)
