"""FastAPI application for the repository event delivery service.

This module provides:
- Application factory with CORS and error handling
- Webhook configuration and delivery history routes
- The /ws real-time channel endpoint
- Health check endpoint
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.logging_config import configure_logging
from src.webhooks.router import get_event_router

logger = structlog.get_logger(__name__)


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    detail: str | None = Field(default=None, description="Detailed error information")


# ============================================================================
# Application Setup
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    """Application lifespan handler."""
    # Startup
    logger.info("application_starting")

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await get_event_router().shutdown()


OPENAPI_TAGS = [
    {
        "name": "Webhooks",
        "description": "Register repository webhooks and inspect their delivery history.",
    },
    {
        "name": "Realtime",
        "description": "WebSocket channel per repository for live updates.",
    },
    {
        "name": "Health",
        "description": "Health check endpoints for monitoring service status.",
    },
]

API_DESCRIPTION = """
## Overview

Delivers repository events (push, pull_request, issue, comment, release,
branch) to registered webhooks and to live WebSocket clients.

## Webhook deliveries

Each delivery is a `POST` with a canonical JSON body and the headers
`X-DVCS-Event`, `X-DVCS-Signature` (HMAC-SHA256 hex of the body with the
webhook secret) and `X-DVCS-Delivery` (unique per attempt). Failed deliveries
are retried up to 3 times after 2s, 4s and 8s. Delivery is at-least-once:
use `X-DVCS-Delivery` and the payload to deduplicate.
"""


def create_app(
    title: str = "Repository Event Delivery API",
    version: str = "1.0.0",
    description: str | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        title: API title.
        version: API version.
        description: API description (uses default if not provided).
        cors_origins: Allowed CORS origins.

    Returns:
        Configured FastAPI application.
    """
    configure_logging()

    app = FastAPI(
        title=title,
        version=version,
        description=description or API_DESCRIPTION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=OPENAPI_TAGS,
    )

    # Configure CORS
    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add exception handlers
    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException  # noqa: ARG001
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
                detail=None,
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception  # noqa: ARG001
    ) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc) if app.debug else None,
            ).model_dump(),
        )

    # Register routes
    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all routes on the application.

    Args:
        app: FastAPI application.
    """
    from src.api.webhooks import router as webhooks_router

    app.include_router(webhooks_router)

    from src.api.realtime import router as realtime_router

    app.include_router(realtime_router)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, Any]:
        """Basic liveness check."""
        return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


app = create_app()
