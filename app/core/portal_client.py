"""HTTP client for the portal's system of record.

Every call forwards the caller's bearer token. Failures surface as
:class:`UpstreamServiceError` carrying the upstream status and body so that
services can translate them into domain errors.
"""

from typing import Any

import httpx
import structlog

from app.config import settings
from app.core.exceptions import UpstreamServiceError

logger = structlog.get_logger()


class PortalClient:
    """Thin async wrapper around the external appointment/test-request API."""

    def __init__(self, http: httpx.AsyncClient):
        """Initialize with a shared ``httpx.AsyncClient`` bound to the base URL."""
        self.http = http

    @classmethod
    def create_http_client(cls, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
        """Build the shared HTTP client from settings."""
        return httpx.AsyncClient(
            base_url=settings.portal_api_base_url.rstrip("/"),
            timeout=settings.portal_api_timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        **kwargs: Any,
    ) -> Any:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            response = await self.http.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("upstream_timeout", method=method, path=path)
            raise UpstreamServiceError("Upstream service timed out", status_code=504) from e
        except httpx.HTTPError as e:
            logger.warning("upstream_unreachable", method=method, path=path, error=str(e))
            raise UpstreamServiceError("Unable to reach upstream service") from e

        if response.is_error:
            raise UpstreamServiceError(
                f"Upstream {method} {path} failed with status {response.status_code}",
                status_code=response.status_code,
                payload=_safe_json(response),
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def list_doctor_availability(self, token: str, doctor_id: int) -> list[dict]:
        """Fetch a doctor's windows (public view)."""
        data = await self._request("GET", f"/doctors/{doctor_id}/availability/", token)
        return unwrap_results(data)

    async def list_my_availability(self, token: str) -> list[dict]:
        """Fetch the signed-in doctor's own windows."""
        data = await self._request("GET", "/doctors/portal/availability/", token)
        return unwrap_results(data)

    async def create_availability(self, token: str, payload: dict[str, Any]) -> dict:
        """Create one window."""
        return await self._request("POST", "/doctors/portal/availability/", token, json=payload)

    async def update_availability(self, token: str, window_id: int, payload: dict[str, Any]) -> dict:
        """Replace one window."""
        return await self._request(
            "PUT", f"/doctors/portal/availability/{window_id}/", token, json=payload
        )

    async def delete_availability(self, token: str, window_id: int) -> None:
        """Delete one window."""
        await self._request("DELETE", f"/doctors/portal/availability/{window_id}/", token)

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    async def create_appointment(self, token: str, payload: dict[str, Any]) -> dict:
        """Create an appointment."""
        return await self._request("POST", "/appointments/", token, json=payload)

    async def get_appointment(self, token: str, appointment_id: int) -> dict:
        """Fetch one appointment visible to the caller."""
        return await self._request("GET", f"/appointments/{appointment_id}/", token)

    # ------------------------------------------------------------------
    # Test requests
    # ------------------------------------------------------------------

    async def list_test_requests(self, token: str, *, as_doctor: bool, page: int = 1) -> dict:
        """Fetch one page of test requests for the caller's role."""
        path = "/doctors/test-requests/" if as_doctor else "/doctors/test-requests/my-requests/"
        data = await self._request("GET", path, token, params={"page": page})
        if isinstance(data, list):
            return {"count": len(data), "next": None, "results": data}
        return data or {"count": 0, "next": None, "results": []}

    async def get_test_request(self, token: str, test_request_id: int) -> dict:
        """Fetch one test request."""
        return await self._request("GET", f"/doctors/test-requests/{test_request_id}/", token)

    async def create_test_request(self, token: str, payload: dict[str, Any]) -> dict:
        """Create a test request."""
        return await self._request("POST", "/doctors/test-requests/", token, json=payload)

    async def update_test_request(
        self, token: str, test_request_id: int, payload: dict[str, Any]
    ) -> dict:
        """Partially update a test request."""
        return await self._request(
            "PATCH", f"/doctors/test-requests/{test_request_id}/", token, json=payload
        )

    async def delete_test_request(self, token: str, test_request_id: int) -> None:
        """Delete a test request."""
        await self._request("DELETE", f"/doctors/test-requests/{test_request_id}/", token)

    async def list_test_request_results(self, token: str, test_request_id: int) -> list[dict]:
        """Fetch documents uploaded against a test request."""
        data = await self._request(
            "GET", f"/doctors/test-requests/{test_request_id}/results/", token
        )
        return unwrap_results(data)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload_document(
        self,
        token: str,
        *,
        filename: str,
        content: bytes,
        content_type: str | None,
        fields: dict[str, Any],
    ) -> dict:
        """Upload a medical document as multipart form data."""
        data = {key: str(value) for key, value in fields.items() if value is not None}
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        return await self._request("POST", "/health/documents/", token, data=data, files=files)

    async def ping(self) -> bool:
        """Check that the upstream answers at all."""
        try:
            response = await self.http.get("/", timeout=3.0)
        except httpx.HTTPError:
            return False
        return response.status_code < 500


def unwrap_results(data: Any) -> list[dict]:
    """Normalize a bare list or a paginated ``{"results": [...]}`` envelope to a list."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get("results"), list):
        return data["results"]
    return []


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None
