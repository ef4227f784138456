import itertools
import json
import os
import re
from collections.abc import AsyncGenerator
from datetime import date, timedelta

import httpx
import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

os.environ["PORTAL_API_BASE_URL"] = "http://portal.test"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-scheduling-tests"
# No propagation wait in tests
os.environ["FOLLOWUP_REFRESH_DELAY_SECONDS"] = "0"
os.environ.setdefault("LOG_FORMAT", "console")

from app.core.portal_client import PortalClient  # noqa: E402
from app.core.security import Role, SessionContext, create_access_token  # noqa: E402
from app.main import app  # noqa: E402

DOCTOR_ID = 7
PATIENT_ID = 21


class FakePortal:
    """In-memory stand-in for the portal's system of record."""

    def __init__(self) -> None:
        self.windows: dict[int, dict] = {}
        self.appointments: dict[int, dict] = {}
        self.test_requests: dict[int, dict] = {}
        self.documents: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.failures: dict[tuple[str, str], object] = {}
        # test request id -> number of reads that still miss a fresh link
        self.stale_reads: dict[int, int] = {}
        self.link_lag = 0
        # Called with the fake after a follow-up link is stored
        self.on_link = None
        self._ids = itertools.count(100)

    # -- seeding -------------------------------------------------------

    def add_window(
        self,
        day_of_week: int,
        start_time: str,
        end_time: str,
        is_available: bool = True,
        doctor: int = DOCTOR_ID,
    ) -> dict:
        window_id = next(self._ids)
        row = {
            "id": window_id,
            "doctor": doctor,
            "day_of_week": day_of_week,
            "start_time": f"{start_time}:00",
            "end_time": f"{end_time}:00",
            "is_available": is_available,
        }
        self.windows[window_id] = row
        return row

    def add_test_request(self, **overrides) -> dict:
        tr_id = next(self._ids)
        row = {
            "id": tr_id,
            "appointment": 55,
            "appointment_date": "2026-01-05",
            "doctor": {"id": DOCTOR_ID, "full_name": "Dr. Ada Lovelace"},
            "doctor_name": "Dr. Ada Lovelace",
            "patient": PATIENT_ID,
            "patient_name": "Pat Doe",
            "patient_email": "pat@example.com",
            "test_name": "Complete Blood Count",
            "test_description": "Routine CBC",
            "instructions": "Fast for 8 hours",
            "status": "pending",
            "followup_appointment": None,
            "has_test_results": False,
            "test_results_count": 0,
            "requested_at": "2026-01-05T10:00:00Z",
            "created_at": "2026-01-05T10:00:00Z",
            "updated_at": "2026-01-05T10:00:00Z",
        }
        row.update(overrides)
        self.test_requests[tr_id] = row
        return row

    def add_appointment(self, **overrides) -> dict:
        appointment_id = overrides.pop("id", None) or next(self._ids)
        row = {
            "id": appointment_id,
            "doctor": DOCTOR_ID,
            "user": PATIENT_ID,
            "date": "2026-01-12",
            "start_time": "09:00:00",
            "end_time": "09:30:00",
            "appointment_type": "in_person",
            "status": "scheduled",
            "reason": "Review blood test results",
            "notes": None,
            "followup_required": False,
            "created_at": "2026-01-05T10:00:00Z",
            "updated_at": "2026-01-05T10:00:00Z",
        }
        row.update(overrides)
        self.appointments[appointment_id] = row
        return row

    def fail(self, method: str, path: str, status_code: int = 500, json=None, exc=None) -> None:
        """Make every call to ``method path`` fail until the test ends."""
        self.failures[(method, path)] = exc or (status_code, json)

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if (method is None or request.method == method)
            and (path is None or request.url.path == path)
        ]

    # -- transport -----------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path

        failure = self.failures.get((method, path))
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            status_code, body = failure
            return httpx.Response(status_code, json=body)

        if path == "/":
            return httpx.Response(200, json={"status": "ok"})

        if match := re.fullmatch(r"/doctors/(\d+)/availability/", path):
            doctor = int(match.group(1))
            rows = [row for row in self.windows.values() if row["doctor"] == doctor]
            return httpx.Response(200, json={"count": len(rows), "next": None, "results": rows})

        if path == "/doctors/portal/availability/":
            if method == "GET":
                rows = [row for row in self.windows.values() if row["doctor"] == DOCTOR_ID]
                return httpx.Response(200, json=rows)
            body = _json(request)
            row = {"id": next(self._ids), "doctor": DOCTOR_ID, **body}
            self.windows[row["id"]] = row
            return httpx.Response(201, json=row)

        if match := re.fullmatch(r"/doctors/portal/availability/(\d+)/", path):
            window_id = int(match.group(1))
            if window_id not in self.windows:
                return httpx.Response(404, json={"detail": "Not found."})
            if method == "DELETE":
                del self.windows[window_id]
                return httpx.Response(204)
            self.windows[window_id].update(_json(request))
            return httpx.Response(200, json=self.windows[window_id])

        if path == "/appointments/" and method == "POST":
            body = _json(request)
            row = {
                "id": next(self._ids),
                "doctor": body["doctor"],
                "user": PATIENT_ID,
                "date": body["date"],
                "start_time": body["start_time"],
                "end_time": body["end_time"],
                "appointment_type": body["appointment_type"],
                "status": "scheduled",
                "reason": body["reason"],
                "notes": body.get("notes"),
                "followup_required": False,
                "created_at": "2026-01-05T10:00:00Z",
                "updated_at": "2026-01-05T10:00:00Z",
            }
            self.appointments[row["id"]] = row
            return httpx.Response(201, json=row)

        if match := re.fullmatch(r"/appointments/(\d+)/", path):
            row = self.appointments.get(int(match.group(1)))
            if row is None:
                return httpx.Response(404, json={"detail": "Not found."})
            return httpx.Response(200, json=row)

        if path in ("/doctors/test-requests/", "/doctors/test-requests/my-requests/"):
            if method == "POST":
                body = _json(request)
                row = self.add_test_request(
                    appointment=body["appointment_id"],
                    test_name=body["test_name"],
                    test_description=body.get("test_description"),
                    instructions=body.get("instructions"),
                    notes=body.get("notes"),
                    doctor=DOCTOR_ID,
                )
                return httpx.Response(201, json=row)
            rows = list(self.test_requests.values())
            return httpx.Response(
                200, json={"count": len(rows), "next": None, "previous": None, "results": rows}
            )

        if match := re.fullmatch(r"/doctors/test-requests/(\d+)/results/", path):
            tr_id = int(match.group(1))
            docs = [doc for doc in self.documents if doc["test_request"] == tr_id]
            return httpx.Response(200, json={"results": docs})

        if match := re.fullmatch(r"/doctors/test-requests/(\d+)/", path):
            tr_id = int(match.group(1))
            row = self.test_requests.get(tr_id)
            if row is None:
                return httpx.Response(404, json={"detail": "Not found."})
            if method == "DELETE":
                del self.test_requests[tr_id]
                return httpx.Response(204)
            if method == "PATCH":
                body = _json(request)
                row.update(body)
                if "followup_appointment" in body:
                    if self.link_lag:
                        self.stale_reads[tr_id] = self.link_lag
                    if self.on_link is not None:
                        self.on_link(self)
                return httpx.Response(200, json=row)
            if self.stale_reads.get(tr_id):
                self.stale_reads[tr_id] -= 1
                return httpx.Response(200, json={**row, "followup_appointment": None})
            return httpx.Response(200, json=row)

        if path == "/health/documents/" and method == "POST":
            content = request.content
            tr_match = re.search(rb'name="test_request_id"\r\n\r\n(\d+)', content)
            appt_match = re.search(rb'name="appointment"\r\n\r\n(\d+)', content)
            tr_id = int(tr_match.group(1)) if tr_match else None
            doc = {
                "id": next(self._ids),
                "uploaded_by": PATIENT_ID,
                "appointment": int(appt_match.group(1)) if appt_match else None,
                "test_request": tr_id,
                "file_url": "https://files.test/result.pdf",
                "filename": "result.pdf",
                "document_type": "test_result",
                "uploaded_at": "2026-01-05T10:00:00Z",
            }
            self.documents.append(doc)
            if tr_id in self.test_requests:
                self.test_requests[tr_id]["has_test_results"] = True
                self.test_requests[tr_id]["test_results_count"] += 1
            return httpx.Response(201, json=doc)

        return httpx.Response(404, json={"detail": f"No route for {method} {path}"})


def _json(request: httpx.Request) -> dict:
    return json.loads(request.content or b"{}")


def upcoming(weekday: int) -> date:
    """Next date (after today) falling on ``weekday`` (Monday = 0)."""
    today = date.today()
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


@pytest.fixture
def fake_portal() -> FakePortal:
    """Fresh in-memory upstream."""
    return FakePortal()


@pytest_asyncio.fixture
async def portal_http(fake_portal: FakePortal) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Shared upstream HTTP client wired to the fake."""
    http = PortalClient.create_http_client(transport=httpx.MockTransport(fake_portal.handler))
    yield http
    await http.aclose()


@pytest.fixture
def portal_client(portal_http: httpx.AsyncClient) -> PortalClient:
    """Upstream client for service-level tests."""
    return PortalClient(portal_http)


@pytest_asyncio.fixture
async def client(portal_http: httpx.AsyncClient) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create a test HTTP client."""
    app.state.portal_http = portal_http

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.state.portal_http = None


def _token(user_id: int, role: Role) -> str:
    return create_access_token(
        data={"sub": str(user_id), "role": role.value},
        expires_delta=timedelta(minutes=30),
    )


@pytest.fixture
def doctor_session() -> SessionContext:
    """Session of the doctor owning the seeded windows."""
    return SessionContext(user_id=DOCTOR_ID, role=Role.DOCTOR, token=_token(DOCTOR_ID, Role.DOCTOR))


@pytest.fixture
def patient_session() -> SessionContext:
    """Session of the patient who received the seeded test requests."""
    return SessionContext(
        user_id=PATIENT_ID, role=Role.PATIENT, token=_token(PATIENT_ID, Role.PATIENT)
    )


@pytest.fixture
def doctor_headers(doctor_session: SessionContext) -> dict:
    """Authentication headers for the doctor."""
    return {"Authorization": f"Bearer {doctor_session.token}"}


@pytest.fixture
def patient_headers(patient_session: SessionContext) -> dict:
    """Authentication headers for the patient."""
    return {"Authorization": f"Bearer {patient_session.token}"}


@pytest.fixture
def next_monday() -> date:
    """The coming Monday, never today."""
    return upcoming(0)


@pytest.fixture
def next_tuesday() -> date:
    """The coming Tuesday, never today."""
    return upcoming(1)
