"""Tests for webhook configuration API endpoints."""

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from src.api.routes import create_app
from src.webhooks.events import RepositoryRef, WebhookEventType
from src.webhooks.store import (
    DeliveryAttempt,
    DeliveryStatus,
    InMemoryWebhookStore,
    set_webhook_store,
)

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store():
    """Create and set test webhook store."""
    store = InMemoryWebhookStore()
    store.add_repository(RepositoryRef(id="repo-1", name="widgets", owner="alice@example.com"))
    set_webhook_store(store)
    yield store
    set_webhook_store(None)


@pytest.fixture
def client(store):  # noqa: ARG001
    """Create test client (store fixture ensures store is set)."""
    app = create_app()
    return TestClient(app)


@pytest.fixture
def sample_webhook(store):
    """Create a sample webhook."""
    return store.register(
        "repo-1",
        "https://example.com/webhook",
        [WebhookEventType.PUSH, WebhookEventType.ISSUE],
    )


# ============================================================================
# Create Webhook Tests
# ============================================================================


class TestCreateWebhook:
    """Tests for POST /repositories/{id}/webhooks."""

    def test_create_webhook(self, client, store):
        """Test creating a new webhook."""
        response = client.post(
            "/repositories/repo-1/webhooks",
            json={
                "url": "https://example.com/webhook",
                "events": ["push", "pull_request"],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"].startswith("wh_")
        assert data["repository_id"] == "repo-1"
        assert data["url"] == "https://example.com/webhook"
        assert sorted(data["events"]) == ["pull_request", "push"]
        assert data["active"] is True
        assert data["last_status"] is None
        assert len(data["secret"]) == 64
        assert store.get(data["id"]).secret == data["secret"]

    def test_create_inactive_webhook(self, client):
        """Test creating a webhook that starts inactive."""
        response = client.post(
            "/repositories/repo-1/webhooks",
            json={"url": "https://example.com/webhook", "events": ["push"], "active": False},
        )

        assert response.status_code == 201
        assert response.json()["active"] is False

    def test_create_webhook_invalid_url(self, client):
        """Test creating webhook with invalid URL."""
        response = client.post(
            "/repositories/repo-1/webhooks",
            json={"url": "not-a-valid-url", "events": ["push"]},
        )

        assert response.status_code == 422

    def test_create_webhook_requires_events(self, client):
        """Test that an empty event list is rejected."""
        response = client.post(
            "/repositories/repo-1/webhooks",
            json={"url": "https://example.com/webhook", "events": []},
        )

        assert response.status_code == 422

    def test_create_webhook_unknown_event(self, client):
        """Test that unknown event types are rejected."""
        response = client.post(
            "/repositories/repo-1/webhooks",
            json={"url": "https://example.com/webhook", "events": ["deploy"]},
        )

        assert response.status_code == 422

    def test_create_webhook_unknown_repository(self, client):
        """Test creating a webhook for an unknown repository."""
        response = client.post(
            "/repositories/missing/webhooks",
            json={"url": "https://example.com/webhook", "events": ["push"]},
        )

        assert response.status_code == 404
        assert "missing" in response.json()["error"]


# ============================================================================
# List Webhooks Tests
# ============================================================================


class TestListWebhooks:
    """Tests for GET /repositories/{id}/webhooks."""

    def test_list_webhooks(self, client, sample_webhook):
        """Test listing webhooks without exposing secrets."""
        response = client.get("/repositories/repo-1/webhooks")

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["id"] == sample_webhook.id
        assert data[0]["events"] == ["issue", "push"]
        assert "secret" not in data[0]
        assert sample_webhook.secret not in response.text

    def test_list_webhooks_empty(self, client):
        """Test listing when no webhooks exist."""
        response = client.get("/repositories/repo-1/webhooks")

        assert response.status_code == 200
        assert response.json() == []

    def test_list_webhooks_unknown_repository(self, client):
        """Test listing webhooks of an unknown repository."""
        response = client.get("/repositories/missing/webhooks")

        assert response.status_code == 404


# ============================================================================
# Delete Webhook Tests
# ============================================================================


class TestDeleteWebhook:
    """Tests for DELETE /repositories/{id}/webhooks/{webhook_id}."""

    def test_delete_webhook(self, client, store, sample_webhook):
        """Test deleting a webhook."""
        response = client.delete(f"/repositories/repo-1/webhooks/{sample_webhook.id}")

        assert response.status_code == 204
        assert store.get(sample_webhook.id) is None

    def test_delete_webhook_not_found(self, client):
        """Test deleting non-existent webhook."""
        response = client.delete("/repositories/repo-1/webhooks/wh_missing")

        assert response.status_code == 404


# ============================================================================
# Delivery History Tests
# ============================================================================


class TestListDeliveries:
    """Tests for GET /repositories/{id}/webhooks/{webhook_id}/deliveries."""

    @pytest.fixture
    def logged_attempts(self, store, sample_webhook):
        """Write two attempts directly into the store log."""
        for retry_count, status, code in (
            (0, DeliveryStatus.FAILED, 500),
            (1, DeliveryStatus.SUCCESS, 200),
        ):
            store._deliveries.append(
                DeliveryAttempt(
                    webhook_id=sample_webhook.id,
                    event=WebhookEventType.PUSH,
                    payload='{"event":"push"}',
                    status=status,
                    response_code=code,
                    retry_count=retry_count,
                    delivery_id=f"d-{retry_count}",
                    created_at=datetime.now(UTC),
                )
            )

    def test_list_deliveries(self, client, sample_webhook, logged_attempts):  # noqa: ARG002
        """Test delivery history is returned newest first."""
        response = client.get(f"/repositories/repo-1/webhooks/{sample_webhook.id}/deliveries")

        assert response.status_code == 200
        data = response.json()
        assert [d["retry_count"] for d in data] == [1, 0]
        assert data[0]["status"] == "success"
        assert data[1]["response_code"] == 500

    def test_list_deliveries_filtered(self, client, sample_webhook, logged_attempts):  # noqa: ARG002
        """Test filtering delivery history by status."""
        response = client.get(
            f"/repositories/repo-1/webhooks/{sample_webhook.id}/deliveries",
            params={"status": "failed", "limit": 10},
        )

        assert response.status_code == 200
        assert [d["status"] for d in response.json()] == ["failed"]

    def test_list_deliveries_webhook_not_found(self, client):
        """Test delivery history of unknown webhook."""
        response = client.get("/repositories/repo-1/webhooks/wh_missing/deliveries")

        assert response.status_code == 404


def test_health(client):
    """Test liveness endpoint."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
