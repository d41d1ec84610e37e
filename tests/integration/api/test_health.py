"""Tests for health check endpoints."""

import pytest
from httpx import AsyncClient


class TestHealthEndpoint:
    """Tests for the liveness endpoint."""

    @pytest.mark.asyncio
    async def test_health_returns_200(self, client: AsyncClient) -> None:
        """Test that health endpoint returns 200 OK."""
        response = await client.get("/health")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_health_returns_correct_structure(self, client: AsyncClient) -> None:
        """Test that health endpoint returns expected structure."""
        response = await client.get("/health")
        data = response.json()

        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0"
        assert "timestamp" in data
        assert "environment" in data

    @pytest.mark.asyncio
    async def test_health_needs_no_token(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert "X-Request-ID" in response.headers


class TestDetailedHealthEndpoint:
    """Tests for the readiness endpoint."""

    @pytest.mark.asyncio
    async def test_degraded_while_channel_stopped(self, api_client: AsyncClient) -> None:
        response = await api_client.get("/health/detailed")
        data = response.json()

        assert response.status_code == 200
        assert data["database"] == "healthy"
        assert data["event_channel"] == "stopped"
        assert data["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_healthy_with_worker_running(
        self, api_client: AsyncClient, dispatch_worker
    ) -> None:
        response = await api_client.get("/health/detailed")
        data = response.json()

        assert data["status"] == "healthy"
        assert data["event_channel"] == "running"
        assert data["pending_events"] == 0


class TestOpenAPI:
    @pytest.mark.asyncio
    async def test_error_envelope_documented(self, client: AsyncClient) -> None:
        response = await client.get("/openapi.json")
        schema = response.json()

        assert "ErrorResponse" in schema["components"]["schemas"]
        project_routes = schema["paths"]["/api/v1/projects"]["post"]["responses"]
        assert "401" in project_routes
