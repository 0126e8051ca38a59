"""Errors raised or reported by the webhook delivery system.

Exception Hierarchy:
    WebhookError (base)
    ├── DeliveryError - A delivery episode exhausted its retries
    └── WebhookStoreError - Webhook store failures
        ├── RepositoryNotFoundError - Unknown repository
        └── WebhookNotFoundError - Unknown webhook
"""

from typing import Any


class WebhookError(Exception):
    """Base exception for webhook errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class DeliveryError(WebhookError):
    """A delivery episode failed after all retries.

    Carried inside a failed DeliveryOutcome rather than raised, so one
    destination's failure never aborts deliveries to the others.

    Attributes:
        webhook_id: Webhook that could not be reached.
        attempts: Number of HTTP attempts made.
        status_code: Status code of the last attempt, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        webhook_id: str,
        attempts: int,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.webhook_id = webhook_id
        self.attempts = attempts
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base.update(
            {
                "webhook_id": self.webhook_id,
                "attempts": self.attempts,
                "status_code": self.status_code,
            }
        )
        return base


class WebhookStoreError(WebhookError):
    """The webhook store could not complete an operation."""


class RepositoryNotFoundError(WebhookStoreError):
    """Raised when a repository is not known to the store."""

    def __init__(self, repository_id: str) -> None:
        super().__init__(
            f"Repository {repository_id} not found",
            details={"repository_id": repository_id},
        )
        self.repository_id = repository_id


class WebhookNotFoundError(WebhookStoreError):
    """Raised when a webhook is not known to the store."""

    def __init__(self, webhook_id: str) -> None:
        super().__init__(
            f"Webhook {webhook_id} not found",
            details={"webhook_id": webhook_id},
        )
        self.webhook_id = webhook_id
