"""Webhook delivery for repository events.

This module provides:
- WebhookEventType: Enumeration of repository event types
- WebhookPayload: Standard payload structure for webhook deliveries
- WebhookStore: Store interface consumed during delivery, with an in-memory implementation
- DeliveryWorker: One delivery episode with retry and backoff
- EventRouter: Concurrent fan-out of an event to subscribed webhooks
- HMAC signature generation and verification
"""

from src.webhooks.errors import (
    DeliveryError,
    RepositoryNotFoundError,
    WebhookError,
    WebhookNotFoundError,
    WebhookStoreError,
)
from src.webhooks.events import (
    RepositoryRef,
    WebhookEventType,
    WebhookPayload,
    create_webhook_payload,
)
from src.webhooks.router import EventRouter, get_event_router, set_event_router
from src.webhooks.security import canonical_json, sign, verify, verify_request
from src.webhooks.store import (
    DeliveryAttempt,
    DeliveryStatus,
    InMemoryWebhookStore,
    WebhookRegistration,
    WebhookStore,
    get_webhook_store,
    set_webhook_store,
)
from src.webhooks.worker import (
    AttemptResult,
    AttemptStatus,
    DeliveryOutcome,
    DeliveryWorker,
)

__all__ = [
    # Events
    "RepositoryRef",
    "WebhookEventType",
    "WebhookPayload",
    "create_webhook_payload",
    # Store
    "DeliveryAttempt",
    "DeliveryStatus",
    "InMemoryWebhookStore",
    "WebhookRegistration",
    "WebhookStore",
    "get_webhook_store",
    "set_webhook_store",
    # Delivery
    "AttemptResult",
    "AttemptStatus",
    "DeliveryOutcome",
    "DeliveryWorker",
    "EventRouter",
    "get_event_router",
    "set_event_router",
    # Errors
    "DeliveryError",
    "RepositoryNotFoundError",
    "WebhookError",
    "WebhookNotFoundError",
    "WebhookStoreError",
    # Security
    "canonical_json",
    "sign",
    "verify",
    "verify_request",
]
