"""Integration tests for /health, /info, the lifespan and response headers."""

from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from pytest_mock import MockerFixture

from taxform.api.main import lifespan


@pytest.mark.integration
class TestServiceEndpoints:
    async def test_info(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/info")

        assert response.status_code == 200
        assert response.json() == {
            "app_name": "Taxform API",
            "version": "0.1.0",
            "environment": "development",
            "debug": True,
        }

    async def test_health_reports_healthy_database(
        self, api_client: AsyncClient, mocker: MockerFixture
    ) -> None:
        mocker.patch(
            "taxform.api.main.check_database_connection", return_value=(True, None)
        )
        mocker.patch("taxform.api.main.get_engine", return_value=MagicMock())

        response = await api_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": True}

    async def test_health_degrades_when_database_is_down(
        self, api_client: AsyncClient, mocker: MockerFixture
    ) -> None:
        mocker.patch(
            "taxform.api.main.check_database_connection",
            return_value=(False, "Connection refused"),
        )

        response = await api_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "degraded", "database": False}

    async def test_unknown_route_uses_error_envelope(
        self, api_client: AsyncClient
    ) -> None:
        response = await api_client.get("/does-not-exist")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.integration
class TestResponseHeaders:
    async def test_security_headers(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/info")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["Content-Security-Policy"].startswith("default-src")

    async def test_no_hsts_in_development(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/info")

        assert "Strict-Transport-Security" not in response.headers

    async def test_docs_page_has_no_json_csp(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/docs")

        assert response.status_code == 200
        assert "Content-Security-Policy" not in response.headers

    async def test_correlation_id_is_echoed(self, api_client: AsyncClient) -> None:
        response = await api_client.get(
            "/info", headers={"X-Correlation-ID": "corr-from-client"}
        )

        assert response.headers["X-Correlation-ID"] == "corr-from-client"

    async def test_correlation_id_is_generated(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/info")

        assert response.headers["X-Correlation-ID"]

    async def test_error_body_carries_request_ids(self, api_client: AsyncClient) -> None:
        response = await api_client.get(
            "/api/v1/tax-rates",
            headers={"X-Correlation-ID": "corr-1", "X-Request-ID": "req-1"},
        )
        body = response.json()

        assert response.status_code == 401
        assert body["correlation_id"] == "corr-1"
        assert body["request_id"] == "req-1"
        assert response.headers["X-Request-ID"] == "req-1"


@pytest.mark.integration
class TestLifespan:
    async def test_startup_fails_without_database(self, mocker: MockerFixture) -> None:
        mocker.patch(
            "taxform.api.main.check_database_connection",
            return_value=(False, "Connection refused"),
        )
        mock_close = mocker.patch("taxform.api.main.close_database")

        with pytest.raises(
            RuntimeError, match="Database connection failed: Connection refused"
        ):
            async with lifespan(FastAPI(title="Test App", version="1.0.0")):
                pass  # pragma: no cover

        mock_close.assert_not_called()

    async def test_shutdown_closes_database(self, mocker: MockerFixture) -> None:
        mocker.patch(
            "taxform.api.main.check_database_connection", return_value=(True, None)
        )
        mock_close = mocker.patch("taxform.api.main.close_database")

        async with lifespan(FastAPI(title="Test App", version="1.0.0")):
            mock_close.assert_not_called()

        mock_close.assert_awaited_once()
