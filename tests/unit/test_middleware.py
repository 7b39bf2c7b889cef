"""Unit tests for the correlation ID middleware."""

from uuid import UUID

import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from signalhub.api.middleware import CorrelationIdMiddleware, resolve_correlation_id


@pytest.fixture
def client():
    app = FastAPI()
    app.add_middleware(CorrelationIdMiddleware)

    @app.get("/context")
    async def context():
        return structlog.contextvars.get_contextvars()

    return TestClient(app)


class TestResolveCorrelationId:
    def test_keeps_well_formed_id(self):
        assert resolve_correlation_id("req-42.a_b") == "req-42.a_b"

    @pytest.mark.parametrize("value", [None, "", "x" * 65, "bad id", "evil\nline"])
    def test_mints_uuid_otherwise(self, value):
        result = resolve_correlation_id(value)

        assert result != value
        assert UUID(result).version == 4


class TestCorrelationIdMiddleware:
    def test_binds_request_context(self, client):
        response = client.get("/context", headers={"X-Correlation-Id": "abc-123"})

        assert response.headers["X-Correlation-Id"] == "abc-123"
        assert response.json() == {
            "correlation_id": "abc-123",
            "method": "GET",
            "path": "/context",
        }

    def test_generates_id_when_absent(self, client):
        response = client.get("/context")

        generated = response.headers["X-Correlation-Id"]
        assert UUID(generated).version == 4
        assert response.json()["correlation_id"] == generated

    def test_replaces_malformed_id(self, client):
        response = client.get("/context", headers={"X-Correlation-Id": "a b c"})

        assert response.headers["X-Correlation-Id"] != "a b c"
