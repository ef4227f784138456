"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and optional details."""
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error", details: dict[str, Any] | None = None):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422, details=details)


# ============================================================================
# Scheduling errors
# ============================================================================


class BookingValidationError(ValidationException):
    """A booking failed local validation and was never sent upstream."""

    def __init__(self, field_errors: dict[str, str]):
        """Initialize with a field -> message map."""
        self.field_errors = field_errors
        super().__init__("Booking validation failed", details=field_errors)


class SlotUnavailableError(ConflictException):
    """The chosen start time is not one of the doctor's current slots."""

    def __init__(self, message: str = "The selected time slot is no longer available"):
        """Initialize with 409 status code."""
        super().__init__(message)


class UpstreamServiceError(AppException):
    """The external system of record rejected a call or could not be reached."""

    def __init__(
        self,
        message: str = "Upstream service unavailable",
        status_code: int = 502,
        payload: Any = None,
    ):
        """Initialize with the upstream status code and raw payload."""
        self.payload = payload
        super().__init__(message, status_code=status_code)


class SubmissionError(AppException):
    """An appointment submission was rejected upstream or timed out."""

    GENERIC_MESSAGE = "Slot unavailable or server error"

    def __init__(
        self,
        message: str = GENERIC_MESSAGE,
        status_code: int = 502,
        field_errors: dict[str, str] | None = None,
    ):
        """Initialize with optional upstream field errors."""
        self.field_errors = field_errors or {}
        super().__init__(message, status_code=status_code, details=field_errors or None)


class AppointmentLimitError(SubmissionError):
    """The patient's plan does not allow more appointments."""

    def __init__(self, message: str = "Appointment limit reached", limit: int | None = None):
        """Initialize with the plan limit reported upstream."""
        self.limit = limit
        super().__init__(message, status_code=403)
        self.details = {"limit": limit}


class LifecycleTransitionError(ConflictException):
    """Operation is not allowed in the test request's current state."""


class LifecycleInconsistencyError(AppException):
    """A follow-up booking succeeded but linking it to its test request failed."""

    def __init__(self, test_request_id: int, appointment_id: int, reason: str = ""):
        """Initialize with the ids that could not be linked."""
        self.test_request_id = test_request_id
        self.appointment_id = appointment_id
        message = (
            f"Appointment {appointment_id} was booked but could not be linked "
            f"to test request {test_request_id}"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, status_code=502)
