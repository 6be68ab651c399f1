"""
Unit Tests for API Routes

Drives the FastAPI app with TestClient over a gateway wired to the
in-memory broker. The client is used as a context manager so the
lifespan runs.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from pubsub_gateway.application.app import create_app
from pubsub_gateway.core.exceptions import PoolExhaustedError

BASE = "/api/broker"


@pytest.fixture
def client(gateway):
    """Test client bound to the shared in-memory gateway."""
    with TestClient(create_app(gateway), raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.mark.unit
class TestPublishRoutes:

    def test_publish_text_to_named_topic(self, client, broker):
        response = client.post(f"{BASE}/topic/sensor/temperature", content="25.5 C")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Message sent to topic: sensor/temperature"
        assert data["destination"] == "sensor/temperature"
        assert data["kind"] == "topic"
        assert data["message_type"] == "TEXT_MESSAGE"
        assert data["message_id"]

        destination, message = broker.sent[-1]
        assert destination.name == "sensor/temperature"
        assert message.text == "25.5 C"

    def test_publish_text_without_name_uses_default_queue(self, client):
        response = client.post(f"{BASE}/queue", content="job")

        assert response.status_code == 200
        assert response.json()["message"] == "Message sent to queue: default-queue"

    def test_publish_file_to_queue(self, client, broker):
        response = client.post(
            f"{BASE}/queue/file/orders",
            files={"file": ("report.txt", b"quarterly numbers", "text/plain")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "File sent to queue: orders"
        assert data["file_name"] == "report.txt"
        assert data["size"] == len(b"quarterly numbers")
        assert data["message_type"] == "FILE_MESSAGE"
        assert broker.sent[-1][1].attachment == b"quarterly numbers"

    def test_file_route_without_name_uses_default_topic(self, client):
        response = client.post(f"{BASE}/topic/file", files={"file": ("a.bin", b"\x00\x01")})

        assert response.status_code == 200
        assert response.json()["destination"] == "default/topic"

    def test_file_route_requires_upload(self, client):
        response = client.post(f"{BASE}/topic/file/t")

        assert response.status_code == 422


@pytest.mark.unit
class TestSubscribeRoutes:

    def test_subscribe_then_drain_topic(self, client):
        response = client.post(f"{BASE}/subscribe/topic/sensor/temperature")
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Subscribed to topic: sensor/temperature"
        assert data["state"] == "active"
        assert data["subscription_id"].startswith("topic-")

        client.post(f"{BASE}/topic/sensor/temperature", content="25.5 C")

        assert client.get(f"{BASE}/messages/topic/sensor/temperature").json() == ["25.5 C"]
        assert client.get(f"{BASE}/messages/topic/sensor/temperature").json() == []

    def test_listen_queue_and_receive_file(self, client, test_settings):
        response = client.post(f"{BASE}/listen/queue/orders")
        assert response.json()["message"] == "Listening on queue: orders"

        client.post(f"{BASE}/queue/file/orders", files={"file": ("report.txt", b"B")})

        messages = client.get(f"{BASE}/messages/queue/orders").json()
        saved = Path(test_settings.RECEIVED_FILES_DIRECTORY) / "report.txt"
        assert len(messages) == 1
        assert messages[0].startswith("File 'report.txt' received and saved to: ")
        assert saved.read_bytes() == b"B"

    def test_default_names_on_subscribe_and_drain(self, client):
        assert client.post(f"{BASE}/subscribe/topic").json()["destination"] == "default/topic"

        client.post(f"{BASE}/topic", content="hello")

        assert client.get(f"{BASE}/messages/topic").json() == ["hello"]

    def test_drain_unknown_destination_is_empty(self, client):
        response = client.get(f"{BASE}/messages/queue/never-used")

        assert response.status_code == 200
        assert response.json() == []

    def test_unsubscribe(self, client):
        subscription_id = client.post(f"{BASE}/subscribe/topic/t").json()["subscription_id"]

        response = client.delete(f"{BASE}/subscriptions/{subscription_id}")

        assert response.status_code == 200
        assert response.json() == {
            "message": f"Subscription closed: {subscription_id}",
            "subscription_id": subscription_id,
            "state": "closed",
        }

    def test_unsubscribe_unknown_id_is_404(self, client):
        response = client.delete(f"{BASE}/subscriptions/topic-missing")

        assert response.status_code == 404
        assert response.json()["error"] == "Subscription Not Found"


@pytest.mark.unit
class TestErrorMapping:

    def test_pool_exhausted_is_503_with_retry_after(self, client, gateway):
        with patch.object(gateway, "send_text", side_effect=PoolExhaustedError()):
            response = client.post(f"{BASE}/topic/t", content="x")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.json() == {
            "error": "Service Unavailable",
            "message": "Session pool exhausted - no session available",
        }

    def test_broker_failure_is_500(self, client, broker):
        broker.fail_send = True

        response = client.post(f"{BASE}/queue/orders", content="x")

        assert response.status_code == 500
        assert response.json() == {"error": "Broker Messaging Error", "message": "Send rejected"}

    def test_subscribe_failure_is_500(self, client, broker):
        broker.fail_connect = True

        response = client.post(f"{BASE}/subscribe/topic/t")

        assert response.status_code == 500
        assert response.json()["error"] == "Broker Messaging Error"

    def test_file_io_error_is_400(self, client, gateway):
        with patch.object(gateway, "send_file", side_effect=OSError("read failed")):
            response = client.post(f"{BASE}/topic/file/t", files={"file": ("a.txt", b"A")})

        assert response.status_code == 400
        assert response.json() == {"error": "File I/O Error", "message": "Error processing file."}

    def test_unexpected_error_is_500(self, client, gateway):
        with patch.object(gateway, "drain_messages", side_effect=RuntimeError("boom")):
            response = client.get(f"{BASE}/messages/topic/t")

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Internal Server Error"
        assert data["message"] == "An unexpected error occurred."

    def test_error_bodies_documented_in_openapi(self, client):
        schema = client.get("/openapi.json").json()
        error_ref = "#/components/schemas/ErrorResponse"

        def ref(path, method, status):
            return schema["paths"][path][method]["responses"][status]["content"]["application/json"]["schema"]["$ref"]

        assert set(schema["components"]["schemas"]["ErrorResponse"]["required"]) == {"error", "message"}
        assert ref(f"{BASE}/topic", "post", "503") == error_ref
        assert ref(f"{BASE}/queue/file/{{name}}", "post", "400") == error_ref
        assert ref(f"{BASE}/subscriptions/{{subscription_id}}", "delete", "404") == error_ref


@pytest.mark.unit
class TestOperationalRoutes:

    def test_health_reports_pools_and_subscriptions(self, client):
        client.post(f"{BASE}/listen/queue/orders")

        response = client.get(f"{BASE}/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["pools"]["consumer"]["num_active"] == 1
        assert data["subscriptions"][0]["kind"] == "queue"

    def test_degraded_health_is_503(self, client, gateway, broker):
        subscription = gateway.subscribe_topic("t")
        broker.kill(subscription.session)
        broker.fail_connect = True
        gateway.registry.check_subscriptions()

        response = client.get(f"{BASE}/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_metrics_exposition(self, client):
        client.post(f"{BASE}/topic/t", content="x")

        response = client.get(f"{BASE}/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "gateway_publish_total" in response.text

    def test_root(self, client):
        data = client.get("/").json()

        assert data["health"] == f"{BASE}/health"


@pytest.mark.unit
class TestRequestId:

    def test_request_id_echoed(self, client):
        response = client.get(f"{BASE}/messages/topic/t", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated(self, client):
        response = client.get(f"{BASE}/messages/topic/t")

        assert response.headers["X-Request-ID"]

    def test_request_id_on_error_responses(self, client, gateway):
        with patch.object(gateway, "send_text", side_effect=PoolExhaustedError()):
            response = client.post(f"{BASE}/topic/t", content="x", headers={"X-Request-ID": "req-503"})

        assert response.headers["X-Request-ID"] == "req-503"
