"""Event routing to registered webhooks.

Resolves the active webhooks of a repository that subscribe to an event and
runs one delivery episode per webhook concurrently. Deliveries are settled
independently: one endpoint exhausting its retries never cancels or fails
the others.
"""

import asyncio
from typing import Any

import structlog

from src.webhooks.errors import DeliveryError
from src.webhooks.events import WebhookEventType, WebhookPayload
from src.webhooks.store import WebhookRegistration, WebhookStore, get_webhook_store
from src.webhooks.worker import DeliveryOutcome, DeliveryWorker

logger = structlog.get_logger(__name__)


class EventRouter:
    """Dispatches repository events to subscribed webhooks."""

    def __init__(
        self,
        store: WebhookStore | None = None,
        worker: DeliveryWorker | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            store: Webhook store (uses global if not provided).
            worker: Delivery worker (built on the store if not provided).
        """
        self._store = store if store is not None else get_webhook_store()
        self._worker = worker or DeliveryWorker(self._store)
        self._background_tasks: set[asyncio.Task[list[DeliveryOutcome]]] = set()
        self._logger = logger.bind(component="event_router")

    async def dispatch(
        self,
        repository_id: str,
        event_type: WebhookEventType | str,
        data: dict[str, Any] | None = None,
        *,
        max_retries: int | None = None,
    ) -> list[DeliveryOutcome]:
        """Dispatch an event to all matching webhooks and wait for them.

        Args:
            repository_id: Repository the event belongs to.
            event_type: Type of event.
            data: Event data.
            max_retries: Retries per delivery (uses settings if not provided).

        Returns:
            One settled outcome per matching webhook.

        Raises:
            ValueError: If the event type is unknown.
        """
        event = WebhookEventType.parse(event_type)

        self._logger.info(
            "dispatching_event",
            repository_id=repository_id,
            event_type=event.value,
        )

        webhooks = [
            webhook
            for webhook in await self._store.find_active_webhooks(repository_id, event)
            if webhook.repository_id == repository_id and webhook.should_receive_event(event)
        ]

        if not webhooks:
            self._logger.debug(
                "no_webhooks_subscribed",
                repository_id=repository_id,
                event_type=event.value,
            )
            return []

        tasks = [
            asyncio.create_task(
                self._worker.deliver(
                    webhook,
                    WebhookPayload(event=event, repository=webhook.repository, data=data or {}),
                    max_retries=max_retries,
                )
            )
            for webhook in webhooks
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes = [
            self._settle(webhook, result) for webhook, result in zip(webhooks, results, strict=True)
        ]

        self._logger.info(
            "event_dispatched",
            repository_id=repository_id,
            event_type=event.value,
            webhook_count=len(webhooks),
            failed_count=sum(1 for o in outcomes if not o.success),
        )

        return outcomes

    def dispatch_in_background(
        self,
        repository_id: str,
        event_type: WebhookEventType | str,
        data: dict[str, Any] | None = None,
        *,
        max_retries: int | None = None,
    ) -> asyncio.Task[list[DeliveryOutcome]]:
        """Schedule a dispatch without waiting for deliveries.

        The task is tracked until it completes so shutdown() can wait for it.

        Returns:
            Task resolving to the settled outcomes.
        """
        task = asyncio.create_task(
            self.dispatch(repository_id, event_type, data, max_retries=max_retries)
        )
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    def _settle(
        self,
        webhook: WebhookRegistration,
        result: DeliveryOutcome | BaseException,
    ) -> DeliveryOutcome:
        """Turn an unexpected episode exception into a failed outcome."""
        if isinstance(result, DeliveryOutcome):
            return result

        self._logger.error(
            "delivery_episode_crashed",
            webhook_id=webhook.id,
            error=str(result),
        )
        return DeliveryOutcome(
            webhook_id=webhook.id,
            url=str(webhook.url),
            success=False,
            attempts=0,
            error=DeliveryError(
                f"Delivery to webhook {webhook.id} crashed: {result!r}",
                webhook_id=webhook.id,
                attempts=0,
            ),
        )

    @property
    def pending_count(self) -> int:
        """Number of background dispatches still running."""
        return len(self._background_tasks)

    async def shutdown(self) -> None:
        """Wait for pending background dispatches."""
        if self._background_tasks:
            self._logger.info(
                "waiting_for_pending_dispatches",
                count=len(self._background_tasks),
            )
            await asyncio.gather(*self._background_tasks, return_exceptions=True)


# Global router instance
_event_router: EventRouter | None = None


def get_event_router() -> EventRouter:
    """Get the global event router.

    Returns:
        Singleton EventRouter.
    """
    global _event_router
    if _event_router is None:
        _event_router = EventRouter()
    return _event_router


def set_event_router(router: EventRouter | None) -> None:
    """Set the global event router.

    Useful for testing.

    Args:
        router: EventRouter instance.
    """
    global _event_router
    _event_router = router
