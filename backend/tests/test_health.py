"""Tests for health and root endpoints."""

import pytest


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_check(self, client):
        """Health endpoint needs no auth."""
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_root(self, client):
        """Root endpoint names the API."""
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "RecoveryLine API"

    @pytest.mark.asyncio
    async def test_security_headers(self, client):
        """Every response carries the security headers."""
        response = await client.get("/health")
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["Cache-Control"] == "no-store"
