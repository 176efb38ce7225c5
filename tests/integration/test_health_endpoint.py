import logging
import uuid
from unittest.mock import patch

import pytest

pytestmark = pytest.mark.integration


class TestHealthCheck:
    def test_health_check_returns_200(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "services" in data

    def test_health_check_reports_database_and_cache(self, client):
        data = client.get("/health").json()
        for service in ("database", "cache"):
            assert data["services"][service]["status"] == "up"
            assert "response_time_ms" in data["services"][service]

    def test_health_check_reports_saga_backlog(
        self, client, place_order, processor, make_product, stock, card_method
    ):
        product = make_product("HC-01")
        stock(product, 1)
        processor.advance(place_order((product, 2)).id)

        saga = client.get("/health").json()["saga"]

        assert saga == {
            "orders_in_error": 1,
            "payments_processing": 0,
            "payments_pending_confirmation": 0,
        }

    def test_unreachable_cache_is_unhealthy(self, client):
        with patch(
            "modules.core.views._check_cache",
            side_effect=ConnectionError("Cache read failed"),
        ):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["services"]["cache"] == {"status": "down"}


class TestCorrelationIdMiddleware:
    def test_returns_provided_request_id(self, client):
        custom_id = "my-custom-request-id-123"
        response = client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        assert response["X-Request-ID"] == custom_id

    def test_generates_uuid_when_no_request_id(self, client):
        response = client.get("/health")
        request_id = response["X-Request-ID"]
        parsed = uuid.UUID(request_id, version=4)
        assert str(parsed) == request_id

    def test_correlation_id_in_logs(self, client, caplog):
        custom_id = "log-test-correlation-456"
        with caplog.at_level(logging.INFO):
            client.get("/health", HTTP_X_REQUEST_ID=custom_id)
        found = any(custom_id in record.getMessage() for record in caplog.records)
        assert found, (
            f"correlation_id '{custom_id}' not found in log records: "
            f"{[r.getMessage() for r in caplog.records]}"
        )
