"""
Quillpress API - Main Application Entry Point

Multi-tenant blog platform: API key authentication and key management.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.config import get_settings
from backend.db.session import engine
from backend.middleware.audit_log import AuditLogMiddleware
from backend.middleware.usage_tracking import UsageTrackingMiddleware
from backend.routers.v1 import api_keys

settings = get_settings()

# Initialize Sentry for error monitoring
if settings.sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"quillpress@{settings.app_version}",
        traces_sample_rate=0.1 if settings.environment == "production" else 1.0,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
        ],
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    # Database connection pool is lazy-initialized by SQLAlchemy
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description=(
        "Quillpress is a multi-tenant blogging platform. This service issues, "
        "validates and revokes API keys and decides which sites each key may act on."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    openapi_url="/api/openapi.json" if settings.debug else None,
)

# Audit logging middleware (captures all requests)
app.add_middleware(AuditLogMiddleware)

# Usage recording for requests made with a valid API key
app.add_middleware(UsageTrackingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoints
@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "quillpress-api"}


@app.get("/health/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check."""
    return {
        "status": "ready",
        "service": "quillpress-api",
        "version": settings.app_version,
        "environment": settings.environment,
    }


# API v1 routes
app.include_router(
    api_keys.router,
    prefix=f"{settings.api_v1_prefix}/api-keys",
    tags=["API Keys"],
)
