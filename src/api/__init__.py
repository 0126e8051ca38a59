"""FastAPI routes for the repository event delivery service.

This module contains:
- Application factory
- Webhook configuration endpoints
- Real-time WebSocket endpoint
"""

from src.api.routes import ErrorResponse, app, create_app

__all__ = [
    "ErrorResponse",
    "app",
    "create_app",
]
