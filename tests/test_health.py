"""Tests for health, root and auth plumbing."""

from datetime import timedelta

import httpx
import pytest
from httpx import AsyncClient

from app.core.security import Role, create_access_token, decode_access_token, session_from_token


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_detailed_health_check(client: AsyncClient) -> None:
    """Test the detailed check reports the upstream."""
    response = await client.get("/api/v1/health/detailed")
    assert response.status_code == 200
    assert response.json()["upstream"] == "healthy"


@pytest.mark.asyncio
async def test_detailed_health_check_degraded(client: AsyncClient, fake_portal) -> None:
    """Test an unreachable upstream degrades the service status."""
    fake_portal.fail("GET", "/", exc=httpx.ConnectError("connection refused"))

    response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["upstream"] == "unhealthy"


@pytest.mark.asyncio
async def test_ping(client: AsyncClient) -> None:
    """Test ping endpoint."""
    response = await client.get("/api/v1/ping")
    assert response.status_code == 200
    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
async def test_root(client: AsyncClient) -> None:
    """Test root endpoint."""
    response = await client.get("/")
    assert response.status_code == 200
    assert "Welcome" in response.json()["message"]


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient) -> None:
    """Test the request id header is propagated."""
    response = await client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
    assert "X-Process-Time" in response.headers


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient) -> None:
    """Test a malformed bearer token is a 401."""
    response = await client.get(
        "/api/v1/test-requests",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_session_from_token():
    """Test claims become an explicit session context."""
    token = create_access_token({"sub": "7", "role": "doctor"})
    session = session_from_token(token)

    assert session is not None
    assert session.user_id == 7
    assert session.role == Role.DOCTOR
    assert session.is_doctor and not session.is_patient
    assert session.token == token


def test_session_defaults_to_patient():
    """Test a token without a role is treated as a patient."""
    session = session_from_token(create_access_token({"sub": "21"}))
    assert session is not None
    assert session.is_patient


@pytest.mark.parametrize(
    "claims",
    [
        {"role": "doctor"},
        {"sub": "abc", "role": "doctor"},
        {"sub": "7", "role": "admin"},
    ],
)
def test_unusable_claims(claims):
    """Test tokens without a numeric subject or known role are refused."""
    assert session_from_token(create_access_token(claims)) is None


def test_expired_token():
    """Test expired tokens do not decode."""
    token = create_access_token({"sub": "7"}, expires_delta=timedelta(minutes=-5))
    assert decode_access_token(token) is None
