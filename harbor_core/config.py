"""
Unified configuration for the HarborList authorization service.

This module provides a single Settings class that consolidates all
environment variables used by the policy-decision service and its
FastAPI front end.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine project root for .env file loading (allows running from any CWD)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Unified settings for the authorization service.

    Environment variables are loaded from .env file and can be overridden
    by actual environment variables.
    """

    # Service identification
    SERVICE_NAME: str = "harborlist-authz"
    ENVIRONMENT: str = "local"

    # Customer identity pool
    CUSTOMER_POOL_ISSUER: str = "https://cognito-idp.us-east-1.amazonaws.com/local-customer-pool"
    CUSTOMER_POOL_AUDIENCE: str = "local-customer-client"
    CUSTOMER_POOL_JWKS_URL: str = ""

    # Staff identity pool
    STAFF_POOL_ISSUER: str = "https://cognito-idp.us-east-1.amazonaws.com/local-staff-pool"
    STAFF_POOL_AUDIENCE: str = "local-staff-client"
    STAFF_POOL_JWKS_URL: str = ""

    # Token verification (HS256 secret is for local development only)
    JWT_SECRET: str = ""
    JWT_LEEWAY_SECONDS: int = 0

    # Staff sessions must re-authenticate after this many seconds (8 hours)
    STAFF_SESSION_TTL: int = 28800

    # Profile store
    POSTGRES_DSN: str = "host=localhost port=5432 dbname=harborlist user=postgres password=postgres"
    STORE_TIMEOUT_SECONDS: float = 0.3

    # Audit trail
    AUDIT_SINK: str = "log"  # "log" or "postgres"
    AUDIT_MODE: str = "async"  # "async" (fire-and-forget) or "sync"
    AUDIT_TIMEOUT_SECONDS: float = 0.2

    # Observability
    ENABLE_TELEMETRY: bool = False
    OTEL_EXPORTER_OTLP_ENDPOINT: str = ""
    LOG_LEVEL: str = "INFO"

    # Rate limiting
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    AUTHORIZER_RATE_LIMIT: str = "600/minute"

    # App host/port
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8081
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    model_config = SettingsConfigDict(
        env_file=PROJECT_ROOT / ".env",
        extra="ignore"
    )


# Global settings instance
settings = Settings()  # type: ignore
