"""Webhook delivery worker with retry logic.

Runs one delivery episode for one webhook: an initial attempt plus up to
``max_retries`` retries with exponential backoff. Every HTTP attempt is
recorded in the delivery log before the retry decision is made.
"""

import asyncio
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
import structlog

from src.config import settings
from src.webhooks.errors import DeliveryError
from src.webhooks.events import WebhookPayload
from src.webhooks.security import canonical_json, create_signature_headers, sign
from src.webhooks.store import (
    DeliveryAttempt,
    DeliveryStatus,
    WebhookRegistration,
    WebhookStore,
)

logger = structlog.get_logger(__name__)


class AttemptStatus(str, Enum):
    """Classification of a single delivery attempt."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


@dataclass(frozen=True)
class AttemptResult:
    """Result of one HTTP attempt."""

    status: AttemptStatus
    status_code: int | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == AttemptStatus.SUCCESS


@dataclass
class DeliveryOutcome:
    """Settled outcome of a delivery episode for one webhook.

    Attributes:
        webhook_id: Target webhook.
        url: Target URL.
        success: Whether the episode ended in a 2xx response.
        attempts: Number of HTTP attempts made.
        status_code: Status code of the last attempt, if any.
        error: Terminal failure, when the episode failed.
    """

    webhook_id: str
    url: str
    success: bool
    attempts: int
    status_code: int | None = None
    error: DeliveryError | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/API responses."""
        return {
            "webhook_id": self.webhook_id,
            "url": self.url,
            "success": self.success,
            "attempts": self.attempts,
            "status_code": self.status_code,
            "error": self.error.to_dict() if self.error else None,
        }


class DeliveryWorker:
    """Delivers signed webhook payloads with bounded retries.

    Features:
    - Async HTTP delivery with a fixed per-attempt timeout
    - Exponential backoff between attempts (2s, 4s, 8s by default)
    - One HMAC signature per episode, fresh delivery ID per attempt
    - One delivery log row per attempt
    """

    def __init__(
        self,
        store: WebhookStore,
        *,
        timeout_seconds: float | None = None,
        backoff_base_seconds: float | None = None,
        max_concurrent_deliveries: int | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            store: Store receiving delivery log rows and status updates.
            timeout_seconds: HTTP timeout for each attempt.
            backoff_base_seconds: Base of the exponential backoff.
            max_concurrent_deliveries: Max concurrent HTTP requests.
            user_agent: User-Agent header value.
            transport: Optional httpx transport (used by tests).
        """
        self._store = store
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        )
        self._backoff_base = (
            backoff_base_seconds
            if backoff_base_seconds is not None
            else settings.WEBHOOK_BACKOFF_BASE_SECONDS
        )
        self._semaphore = asyncio.Semaphore(
            max_concurrent_deliveries or settings.WEBHOOK_MAX_CONCURRENT_DELIVERIES
        )
        self._user_agent = user_agent or settings.WEBHOOK_USER_AGENT
        self._transport = transport
        self._logger = logger.bind(component="delivery_worker")

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the given retry (1-based)."""
        return self._backoff_base ** attempt

    async def deliver(
        self,
        registration: WebhookRegistration,
        payload: WebhookPayload | Mapping[str, Any],
        max_retries: int | None = None,
    ) -> DeliveryOutcome:
        """Run one delivery episode.

        Never raises for delivery failures: exhausting the retries yields a
        failed DeliveryOutcome carrying a DeliveryError.

        Args:
            registration: Target webhook.
            payload: Event payload.
            max_retries: Retries after the initial attempt.

        Returns:
            Settled outcome of the episode.
        """
        if max_retries is None:
            max_retries = settings.WEBHOOK_MAX_RETRIES

        body = canonical_json(payload)
        event = self._event_value(payload)
        signature = sign(body, registration.secret)
        url = str(registration.url)

        attempt = 0
        last_result: AttemptResult | None = None

        while True:
            delivery_id = str(uuid.uuid4())
            last_result = await self._attempt_delivery(
                url, body, signature, event=event, delivery_id=delivery_id
            )
            await self._record_attempt(
                registration, event, body, last_result, attempt, delivery_id
            )

            if last_result.succeeded:
                await self._update_status(registration.id, DeliveryStatus.SUCCESS)
                self._logger.info(
                    "delivery_success",
                    webhook_id=registration.id,
                    attempts=attempt + 1,
                    status_code=last_result.status_code,
                )
                return DeliveryOutcome(
                    webhook_id=registration.id,
                    url=url,
                    success=True,
                    attempts=attempt + 1,
                    status_code=last_result.status_code,
                )

            attempt += 1
            if attempt > max_retries:
                break

            delay = self.backoff_delay(attempt)
            self._logger.debug(
                "scheduling_retry",
                webhook_id=registration.id,
                delay_seconds=delay,
                next_attempt=attempt + 1,
            )
            await asyncio.sleep(delay)

        # All retries exhausted
        last_result = AttemptResult(
            status=AttemptStatus.TERMINAL_FAILURE,
            status_code=last_result.status_code,
            error_message=last_result.error_message,
        )
        await self._update_status(registration.id, DeliveryStatus.FAILED)

        error = DeliveryError(
            f"Delivery to webhook {registration.id} failed after {attempt} attempts: "
            f"{last_result.error_message}",
            webhook_id=registration.id,
            attempts=attempt,
            status_code=last_result.status_code,
        )
        self._logger.error(
            "delivery_failed_permanently",
            webhook_id=registration.id,
            attempts=attempt,
            error=last_result.error_message,
        )
        return DeliveryOutcome(
            webhook_id=registration.id,
            url=url,
            success=False,
            attempts=attempt,
            status_code=last_result.status_code,
            error=error,
        )

    @staticmethod
    def _event_value(payload: WebhookPayload | Mapping[str, Any]) -> str:
        if isinstance(payload, WebhookPayload):
            return payload.event.value
        return str(payload["event"])

    async def _attempt_delivery(
        self,
        url: str,
        body: bytes,
        signature: str,
        *,
        event: str,
        delivery_id: str,
    ) -> AttemptResult:
        """Make a single delivery attempt.

        Args:
            url: Target URL.
            body: Canonical payload bytes.
            signature: Payload signature.
            event: Event type value.
            delivery_id: Identifier for this attempt.

        Returns:
            Classified attempt result.
        """
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            **create_signature_headers(signature, event=event, delivery_id=delivery_id),
        }

        self._logger.debug(
            "attempting_delivery",
            delivery_id=delivery_id,
            url=url,
        )

        try:
            async with self._semaphore:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.post(url, content=body, headers=headers)

        except httpx.TimeoutException:
            self._logger.warning(
                "delivery_timeout",
                delivery_id=delivery_id,
                timeout=self._timeout,
            )
            return AttemptResult(
                status=AttemptStatus.RETRYABLE_FAILURE,
                error_message="Request timeout",
            )

        except httpx.ConnectError as e:
            self._logger.warning(
                "delivery_connection_error",
                delivery_id=delivery_id,
                error=str(e),
            )
            return AttemptResult(
                status=AttemptStatus.RETRYABLE_FAILURE,
                error_message=f"Connection error: {e}",
            )

        except Exception as e:
            self._logger.warning(
                "delivery_unexpected_error",
                delivery_id=delivery_id,
                error=str(e),
            )
            return AttemptResult(
                status=AttemptStatus.RETRYABLE_FAILURE,
                error_message=str(e) or e.__class__.__name__,
            )

        if response.is_success:
            return AttemptResult(
                status=AttemptStatus.SUCCESS,
                status_code=response.status_code,
            )

        self._logger.warning(
            "delivery_non_success_response",
            delivery_id=delivery_id,
            status_code=response.status_code,
        )
        return AttemptResult(
            status=AttemptStatus.RETRYABLE_FAILURE,
            status_code=response.status_code,
            error_message=f"HTTP {response.status_code}",
        )

    async def _record_attempt(
        self,
        registration: WebhookRegistration,
        event: str,
        body: bytes,
        result: AttemptResult,
        retry_count: int,
        delivery_id: str,
    ) -> None:
        """Append the delivery log row for one attempt.

        Log write failures are reported but do not abort the episode.
        """
        attempt = DeliveryAttempt(
            webhook_id=registration.id,
            event=event,  # type: ignore[arg-type]
            payload=body.decode("utf-8"),
            status=DeliveryStatus.SUCCESS if result.succeeded else DeliveryStatus.FAILED,
            response_code=result.status_code,
            error_message=result.error_message,
            retry_count=retry_count,
            delivery_id=delivery_id,
        )
        try:
            await self._store.append_delivery_log(attempt)
        except Exception as e:
            self._logger.error(
                "delivery_log_write_failed",
                webhook_id=registration.id,
                retry_count=retry_count,
                error=str(e),
            )

    async def _update_status(self, webhook_id: str, status: DeliveryStatus) -> None:
        try:
            await self._store.update_webhook_status(webhook_id, datetime.now(UTC), status)
        except Exception as e:
            self._logger.error(
                "webhook_status_update_failed",
                webhook_id=webhook_id,
                status=status.value,
                error=str(e),
            )
