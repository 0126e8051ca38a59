"""Webhook event types and payload models.

This module defines the repository events that can be sent to externally
registered webhooks, and the payload envelope every delivery uses.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class WebhookEventType(str, Enum):
    """Supported webhook event types."""

    PUSH = "push"
    PULL_REQUEST = "pull_request"
    ISSUE = "issue"
    COMMENT = "comment"
    RELEASE = "release"
    BRANCH = "branch"

    @classmethod
    def parse(cls, value: "WebhookEventType | str") -> "WebhookEventType":
        """Coerce a string value into an event type.

        Args:
            value: Event type or its string value.

        Returns:
            The matching event type.

        Raises:
            ValueError: If the value is not a known event type.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise ValueError(f"Unknown webhook event type: {value!r}") from e


class RepositoryRef(BaseModel):
    """Repository identity included in every webhook payload."""

    id: str = Field(..., description="Repository identifier")
    name: str = Field(..., description="Repository name")
    owner: str = Field(..., description="Repository owner")


class WebhookPayload(BaseModel):
    """Standard payload structure for webhook events.

    The same payload is signed once and sent unchanged on every attempt of a
    delivery episode.
    """

    event: WebhookEventType = Field(..., description="Event type")
    repository: RepositoryRef = Field(..., description="Repository the event belongs to")
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific data",
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary.

        Returns:
            Dictionary with enum values and datetimes rendered as JSON types.
        """
        return self.model_dump(mode="json")


def create_webhook_payload(
    event_type: WebhookEventType | str,
    repository: RepositoryRef,
    data: dict[str, Any] | None = None,
) -> WebhookPayload:
    """Create a webhook payload.

    Args:
        event_type: Type of event.
        repository: Repository the event belongs to.
        data: Event-specific data.

    Returns:
        WebhookPayload ready for delivery.
    """
    return WebhookPayload(
        event=WebhookEventType.parse(event_type),
        repository=repository,
        data=data or {},
    )
