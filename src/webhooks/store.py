"""Webhook registrations, delivery log records and the store interface.

Persistence of webhook configuration and delivery logs lives outside the
delivery system. The router and worker only need the three operations of
WebhookStore; InMemoryWebhookStore implements them for tests and
single-process deployments, plus the registration management used by the
configuration API.
"""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, Field, HttpUrl

from src.webhooks.errors import RepositoryNotFoundError
from src.webhooks.events import RepositoryRef, WebhookEventType

logger = structlog.get_logger(__name__)


def generate_webhook_secret() -> str:
    """Generate a webhook secret from 32 random bytes, hex encoded."""
    return secrets.token_hex(32)


class DeliveryStatus(str, Enum):
    """Status of a webhook delivery attempt or episode."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class WebhookRegistration(BaseModel):
    """A registered webhook subscription.

    The secret is excluded from serialization so it never leaks into
    payloads, logs or list responses.
    """

    id: str = Field(
        default_factory=lambda: f"wh_{uuid.uuid4().hex[:12]}",
        description="Unique webhook identifier",
    )
    repository: RepositoryRef = Field(
        ..., description="Repository the webhook belongs to"
    )
    url: HttpUrl = Field(
        ..., description="Webhook endpoint URL"
    )
    events: set[WebhookEventType] = Field(
        default_factory=set,
        description="Event types the webhook subscribes to",
    )
    secret: str = Field(
        default_factory=generate_webhook_secret,
        description="Secret key for HMAC signature",
        exclude=True,
        repr=False,
    )
    active: bool = Field(
        default=True,
        description="Whether webhook is active",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When webhook was created",
    )
    last_delivery_at: datetime | None = Field(
        default=None,
        description="When the last delivery episode completed",
    )
    last_status: DeliveryStatus | None = Field(
        default=None,
        description="Outcome of the last delivery episode",
    )

    @property
    def repository_id(self) -> str:
        """Identifier of the owning repository."""
        return self.repository.id

    def should_receive_event(self, event_type: WebhookEventType) -> bool:
        """Check if this webhook should receive an event type.

        Args:
            event_type: Event type to check.

        Returns:
            True if the webhook is active and subscribes to the event.
        """
        return self.active and event_type in self.events


class DeliveryAttempt(BaseModel):
    """Record of one HTTP delivery attempt.

    Rows are append-only and immutable once created.
    """

    model_config = {"frozen": True}

    id: str = Field(
        default_factory=lambda: f"dlv_{uuid.uuid4().hex[:12]}",
        description="Unique log row identifier",
    )
    webhook_id: str = Field(
        ..., description="Associated webhook ID"
    )
    event: WebhookEventType = Field(
        ..., description="Type of event"
    )
    payload: str = Field(
        ..., description="Canonical JSON payload that was sent"
    )
    status: DeliveryStatus = Field(
        ..., description="Outcome of this attempt"
    )
    response_code: int | None = Field(
        default=None,
        description="HTTP response status code",
    )
    error_message: str | None = Field(
        default=None,
        description="Error message if failed",
    )
    retry_count: int = Field(
        default=0,
        description="Zero-based attempt index within the episode",
        ge=0,
    )
    delivery_id: str | None = Field(
        default=None,
        description="X-DVCS-Delivery identifier sent with this attempt",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the attempt was recorded",
    )


@runtime_checkable
class WebhookStore(Protocol):
    """Operations the delivery system consumes from webhook persistence."""

    async def find_active_webhooks(
        self,
        repository_id: str,
        event: WebhookEventType,
    ) -> list[WebhookRegistration]:
        """Return active registrations of a repository subscribed to an event."""
        ...

    async def append_delivery_log(self, attempt: DeliveryAttempt) -> None:
        """Append one delivery attempt row."""
        ...

    async def update_webhook_status(
        self,
        webhook_id: str,
        last_delivery_at: datetime,
        last_status: DeliveryStatus,
    ) -> None:
        """Record the outcome of a completed delivery episode."""
        ...


# Global webhook store instance
_webhook_store: InMemoryWebhookStore | None = None


class InMemoryWebhookStore:
    """Dictionary-backed webhook store.

    Provides registration management for the configuration API and the
    WebhookStore operations used during delivery.
    """

    def __init__(self) -> None:
        """Initialize the store."""
        self._repositories: dict[str, RepositoryRef] = {}
        self._webhooks: dict[str, WebhookRegistration] = {}
        self._deliveries: list[DeliveryAttempt] = []
        self._logger = logger.bind(component="webhook_store")

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def add_repository(self, repository: RepositoryRef) -> RepositoryRef:
        """Make a repository known to the store."""
        self._repositories[repository.id] = repository
        return repository

    def get_repository(self, repository_id: str) -> RepositoryRef | None:
        """Get a repository by ID."""
        return self._repositories.get(repository_id)

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------

    def register(
        self,
        repository_id: str,
        url: str,
        events: Iterable[WebhookEventType | str],
        *,
        active: bool = True,
        secret: str | None = None,
    ) -> WebhookRegistration:
        """Register a new webhook for a repository.

        Args:
            repository_id: Owning repository.
            url: Webhook endpoint URL.
            events: Event types to subscribe to (at least one).
            active: Whether the webhook starts active.
            secret: Optional secret (generated if not provided).

        Returns:
            Created webhook.

        Raises:
            RepositoryNotFoundError: If the repository is unknown.
            ValueError: If no event types are given.
        """
        repository = self._repositories.get(repository_id)
        if repository is None:
            raise RepositoryNotFoundError(repository_id)

        event_set = {WebhookEventType.parse(e) for e in events}
        if not event_set:
            raise ValueError("A webhook must subscribe to at least one event")

        webhook = WebhookRegistration(
            repository=repository,
            url=url,  # type: ignore[arg-type]
            events=event_set,
            active=active,
            secret=secret or generate_webhook_secret(),
        )
        self._webhooks[webhook.id] = webhook

        self._logger.info(
            "webhook_registered",
            webhook_id=webhook.id,
            repository_id=repository_id,
            url=str(webhook.url),
            event_count=len(event_set),
        )

        return webhook

    def get(self, webhook_id: str) -> WebhookRegistration | None:
        """Get a webhook by ID.

        Args:
            webhook_id: Webhook identifier.

        Returns:
            Webhook if found, None otherwise.
        """
        return self._webhooks.get(webhook_id)

    def list_webhooks(self, repository_id: str) -> list[WebhookRegistration]:
        """List the webhooks registered for a repository."""
        return [
            webhook
            for webhook in self._webhooks.values()
            if webhook.repository_id == repository_id
        ]

    def delete(self, repository_id: str, webhook_id: str) -> bool:
        """Delete a webhook of a repository.

        Args:
            repository_id: Owning repository.
            webhook_id: Webhook identifier.

        Returns:
            True if deleted, False if not found.
        """
        webhook = self._webhooks.get(webhook_id)
        if webhook is None or webhook.repository_id != repository_id:
            return False

        del self._webhooks[webhook_id]
        self._logger.info("webhook_deleted", webhook_id=webhook_id)
        return True

    # ------------------------------------------------------------------
    # Delivery log
    # ------------------------------------------------------------------

    def list_deliveries(
        self,
        webhook_id: str,
        *,
        limit: int = 50,
        status: DeliveryStatus | None = None,
    ) -> list[DeliveryAttempt]:
        """List delivery attempts for a webhook, newest first.

        Args:
            webhook_id: Webhook identifier.
            limit: Maximum results.
            status: Filter by status.

        Returns:
            List of delivery attempts.
        """
        deliveries = [d for d in self._deliveries if d.webhook_id == webhook_id]

        if status:
            deliveries = [d for d in deliveries if d.status == status]

        # Rows are appended in order, so reversing gives newest first
        deliveries.reverse()

        return deliveries[:limit]

    # ------------------------------------------------------------------
    # WebhookStore protocol
    # ------------------------------------------------------------------

    async def find_active_webhooks(
        self,
        repository_id: str,
        event: WebhookEventType,
    ) -> list[WebhookRegistration]:
        """Get the active webhooks of a repository subscribed to an event."""
        return [
            webhook
            for webhook in self._webhooks.values()
            if webhook.repository_id == repository_id
            and webhook.should_receive_event(event)
        ]

    async def append_delivery_log(self, attempt: DeliveryAttempt) -> None:
        """Append a delivery attempt row."""
        self._deliveries.append(attempt)

        self._logger.debug(
            "delivery_logged",
            attempt_id=attempt.id,
            webhook_id=attempt.webhook_id,
            status=attempt.status.value,
            retry_count=attempt.retry_count,
        )

    async def update_webhook_status(
        self,
        webhook_id: str,
        last_delivery_at: datetime,
        last_status: DeliveryStatus,
    ) -> None:
        """Record the outcome of a completed episode.

        Updates for webhooks deleted mid-episode are ignored.
        """
        webhook = self._webhooks.get(webhook_id)
        if webhook is None:
            self._logger.warning("status_update_for_unknown_webhook", webhook_id=webhook_id)
            return

        webhook.last_delivery_at = last_delivery_at
        webhook.last_status = last_status


def get_webhook_store() -> InMemoryWebhookStore:
    """Get the global webhook store instance.

    Returns:
        Singleton InMemoryWebhookStore.
    """
    global _webhook_store
    if _webhook_store is None:
        _webhook_store = InMemoryWebhookStore()
    return _webhook_store


def set_webhook_store(store: InMemoryWebhookStore | None) -> None:
    """Set the global webhook store instance.

    Useful for testing.

    Args:
        store: InMemoryWebhookStore instance.
    """
    global _webhook_store
    _webhook_store = store
