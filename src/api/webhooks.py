"""Webhook configuration API endpoints.

Provides REST API for managing the webhooks of a repository and viewing
their delivery history.
"""

import structlog
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field, HttpUrl

from src.webhooks.errors import RepositoryNotFoundError
from src.webhooks.events import WebhookEventType
from src.webhooks.store import (
    DeliveryAttempt,
    DeliveryStatus,
    InMemoryWebhookStore,
    WebhookRegistration,
    get_webhook_store,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/repositories/{repository_id}/webhooks", tags=["Webhooks"])


# ============================================================================
# Request Models
# ============================================================================


class WebhookCreateRequest(BaseModel):
    """Request to create a new webhook."""

    url: HttpUrl = Field(
        ..., description="Webhook endpoint URL"
    )
    events: list[WebhookEventType] = Field(
        ...,
        description="Event types to subscribe to",
        min_length=1,
    )
    active: bool = Field(
        default=True,
        description="Whether the webhook starts active",
    )


# ============================================================================
# Response Models
# ============================================================================


class WebhookResponse(BaseModel):
    """Webhook details response (never includes the secret)."""

    id: str
    repository_id: str
    url: str
    events: list[WebhookEventType]
    active: bool
    created_at: str
    last_delivery_at: str | None
    last_status: DeliveryStatus | None

    @classmethod
    def from_webhook(cls, webhook: WebhookRegistration) -> "WebhookResponse":
        """Create response from WebhookRegistration model."""
        return cls(
            id=webhook.id,
            repository_id=webhook.repository_id,
            url=str(webhook.url),
            events=sorted(webhook.events, key=lambda e: e.value),
            active=webhook.active,
            created_at=webhook.created_at.isoformat(),
            last_delivery_at=(
                webhook.last_delivery_at.isoformat() if webhook.last_delivery_at else None
            ),
            last_status=webhook.last_status,
        )


class WebhookCreatedResponse(WebhookResponse):
    """Response to webhook creation, the only time the secret is returned."""

    secret: str

    @classmethod
    def from_webhook(cls, webhook: WebhookRegistration) -> "WebhookCreatedResponse":
        """Create response from WebhookRegistration model."""
        base = WebhookResponse.from_webhook(webhook)
        return cls(**base.model_dump(), secret=webhook.secret)


class DeliveryAttemptResponse(BaseModel):
    """Delivery log row response."""

    id: str
    webhook_id: str
    event: WebhookEventType
    payload: str
    status: DeliveryStatus
    response_code: int | None
    error_message: str | None
    retry_count: int
    delivery_id: str | None
    created_at: str

    @classmethod
    def from_attempt(cls, attempt: DeliveryAttempt) -> "DeliveryAttemptResponse":
        """Create response from DeliveryAttempt model."""
        return cls(
            id=attempt.id,
            webhook_id=attempt.webhook_id,
            event=attempt.event,
            payload=attempt.payload,
            status=attempt.status,
            response_code=attempt.response_code,
            error_message=attempt.error_message,
            retry_count=attempt.retry_count,
            delivery_id=attempt.delivery_id,
            created_at=attempt.created_at.isoformat(),
        )


# ============================================================================
# Helpers
# ============================================================================


def _require_repository(store: InMemoryWebhookStore, repository_id: str) -> None:
    if store.get_repository(repository_id) is None:
        raise HTTPException(status_code=404, detail=f"Repository {repository_id} not found")


def _require_webhook(
    store: InMemoryWebhookStore,
    repository_id: str,
    webhook_id: str,
) -> WebhookRegistration:
    webhook = store.get(webhook_id)
    if webhook is None or webhook.repository_id != repository_id:
        raise HTTPException(status_code=404, detail=f"Webhook {webhook_id} not found")
    return webhook


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "",
    response_model=list[WebhookResponse],
    responses={
        404: {"description": "Repository not found"},
    },
)
async def list_webhooks(repository_id: str) -> list[WebhookResponse]:
    """List the webhooks of a repository."""
    store = get_webhook_store()
    _require_repository(store, repository_id)
    return [WebhookResponse.from_webhook(w) for w in store.list_webhooks(repository_id)]


@router.post(
    "",
    response_model=WebhookCreatedResponse,
    responses={
        201: {"description": "Webhook created"},
        404: {"description": "Repository not found"},
    },
    status_code=201,
)
async def create_webhook(
    repository_id: str,
    request: WebhookCreateRequest,
) -> WebhookCreatedResponse:
    """Register a new webhook.

    A secret is generated for HMAC signature verification and returned
    only in this response.
    """
    store = get_webhook_store()

    try:
        webhook = store.register(
            repository_id,
            str(request.url),
            request.events,
            active=request.active,
        )
    except RepositoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e

    logger.info(
        "webhook_created",
        webhook_id=webhook.id,
        repository_id=repository_id,
    )

    return WebhookCreatedResponse.from_webhook(webhook)


@router.delete(
    "/{webhook_id}",
    responses={
        204: {"description": "Webhook deleted"},
        404: {"description": "Webhook not found"},
    },
    status_code=204,
)
async def delete_webhook(repository_id: str, webhook_id: str) -> None:
    """Delete a webhook."""
    store = get_webhook_store()
    deleted = store.delete(repository_id, webhook_id)

    if not deleted:
        raise HTTPException(status_code=404, detail=f"Webhook {webhook_id} not found")


@router.get(
    "/{webhook_id}/deliveries",
    response_model=list[DeliveryAttemptResponse],
    responses={
        404: {"description": "Webhook not found"},
    },
)
async def list_webhook_deliveries(
    repository_id: str,
    webhook_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    status: DeliveryStatus | None = None,
) -> list[DeliveryAttemptResponse]:
    """List delivery attempts for a webhook, newest first."""
    store = get_webhook_store()
    _require_webhook(store, repository_id, webhook_id)

    attempts = store.list_deliveries(webhook_id, limit=limit, status=status)
    return [DeliveryAttemptResponse.from_attempt(a) for a in attempts]

