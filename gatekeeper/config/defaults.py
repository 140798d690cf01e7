"""Environment-dependent defaults for rate limiting and CORS."""

from __future__ import annotations

PRODUCTION = "production"

WINDOW_SECONDS = 900  # 15-minute fixed window

# Requests per window when GATEKEEPER_RATE_LIMIT_MAX is not set
RATE_LIMIT_MAX: dict[str, int] = {
    PRODUCTION: 100,
    "development": 1000,
}
RATE_LIMIT_MAX_FALLBACK = 1000

CORS_ORIGINS: dict[str, list[str]] = {
    PRODUCTION: ["https://gatekeeper.example.com"],
    "development": ["http://localhost:3000", "http://localhost:8080"],
}

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "X-Requested-With"]


def default_rate_limit(environment: str) -> int:
    return RATE_LIMIT_MAX.get(environment, RATE_LIMIT_MAX_FALLBACK)


def default_cors_origins(environment: str) -> list[str]:
    return list(CORS_ORIGINS.get(environment, CORS_ORIGINS["development"]))
