"""Tests for the liveness endpoint."""

from fastapi.testclient import TestClient

from polymarket_copy_signals.health import create_health_app


class TestHealthApp:
    def test_root_is_plain_text(self) -> None:
        client = TestClient(create_health_app())
        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "Polymarket tracker running\n"

    def test_health_includes_status(self) -> None:
        client = TestClient(create_health_app(lambda: {"state": "running", "ticks_completed": 4}))
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["state"] == "running"
        assert body["ticks_completed"] == 4
        assert "timestamp" in body
