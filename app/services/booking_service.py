"""Booking service: validate and submit appointment requests."""

from datetime import date, time
from typing import Any

import structlog
from pydantic import ValidationError

from app.config import settings
from app.core.exceptions import (
    AppointmentLimitError,
    BookingValidationError,
    SlotUnavailableError,
    SubmissionError,
    UpstreamServiceError,
)
from app.core.portal_client import PortalClient
from app.core.security import SessionContext
from app.schemas.appointments import (
    Appointment,
    AppointmentBookingDraft,
    AppointmentBookingForm,
    AppointmentBookingRequest,
)
from app.services.slot_resolver import end_of_slot, resolve_slots, window_from_upstream

logger = structlog.get_logger()

NON_FIELD_KEYS = ("detail", "non_field_errors", "error", "message")
APPOINTMENT_LIMIT_ERROR = "Appointment limit reached"


def field_errors_from(exc: ValidationError) -> dict[str, str]:
    """Flatten pydantic errors into a ``{field: message}`` map, first error per field."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "__all__"
        if field in errors:
            continue
        ctx_error = (error.get("ctx") or {}).get("error")
        errors[field] = str(ctx_error) if ctx_error is not None else error["msg"]
    return errors


def derive_end_time(start_time: time, duration_minutes: int | None = None) -> time:
    """
    Compute a booking's end time from its start.

    Args:
        start_time: Slot start
        duration_minutes: Appointment length, defaults to the configured duration

    Returns:
        End time; rolls over hour and midnight boundaries

    Raises:
        BookingValidationError: If the start time cannot be used
    """
    duration = duration_minutes or settings.appointment_duration_minutes
    if not isinstance(start_time, time):
        raise BookingValidationError(
            {"start_time": "Invalid start time selected, cannot calculate end time."}
        )
    return end_of_slot(start_time, duration)


def parse_upstream_errors(payload: Any) -> tuple[str | None, dict[str, str]]:
    """
    Split a DRF-style error body into a summary message and per-field messages.

    Args:
        payload: Decoded upstream error body

    Returns:
        (summary message or None, field -> message map)
    """
    if not isinstance(payload, dict):
        return (payload if isinstance(payload, str) and payload else None), {}

    summary_parts: list[str] = []
    fields: dict[str, str] = {}
    for key, value in payload.items():
        if isinstance(value, list):
            message = " ".join(str(item) for item in value if isinstance(item, str | int | float))
        elif isinstance(value, str):
            message = value
        else:
            continue
        if not message:
            continue
        if key in NON_FIELD_KEYS:
            summary_parts.append(message)
        else:
            fields[key] = message

    return (". ".join(summary_parts) or None), fields


def submission_error_from(error: UpstreamServiceError) -> SubmissionError:
    """Translate an upstream failure on appointment creation."""
    payload = error.payload
    if isinstance(payload, dict) and payload.get("error") == APPOINTMENT_LIMIT_ERROR:
        return AppointmentLimitError(
            message=payload.get("message") or APPOINTMENT_LIMIT_ERROR,
            limit=payload.get("limit"),
        )

    summary, fields = parse_upstream_errors(payload)
    status_code = error.status_code if error.status_code < 500 or error.status_code == 504 else 502
    if fields:
        return SubmissionError(
            message=summary or "Booking was rejected",
            status_code=status_code,
            field_errors=fields,
        )
    return SubmissionError(
        message=summary if summary and status_code < 500 else SubmissionError.GENERIC_MESSAGE,
        status_code=status_code,
    )


class BookingService:
    """Service for validating and submitting bookings."""

    def __init__(self, client: PortalClient, session: SessionContext):
        """Initialize service with the upstream client and caller context."""
        self.client = client
        self.session = session

    @staticmethod
    def validate(
        form: AppointmentBookingForm,
        duration_minutes: int | None = None,
    ) -> AppointmentBookingRequest:
        """
        Validate a booking form without touching the network.

        Args:
            form: Raw booking input
            duration_minutes: Appointment length override, defaults to the form's
                slot interval and then to the configured duration

        Returns:
            Validated, immutable booking request

        Raises:
            BookingValidationError: With every failing field and its message
        """
        try:
            draft = AppointmentBookingDraft.model_validate(form.model_dump())
        except ValidationError as e:
            raise BookingValidationError(field_errors_from(e)) from None

        end_time = derive_end_time(draft.start_time, duration_minutes or form.interval_minutes)
        return AppointmentBookingRequest(**draft.model_dump(), end_time=end_time)

    @staticmethod
    def check_slot(request: AppointmentBookingRequest, available_slots: list[str]) -> None:
        """Ensure the requested start is one of the freshly resolved slots."""
        if request.start_time.strftime("%H:%M") not in available_slots:
            raise SlotUnavailableError()

    async def current_slots(
        self,
        doctor_id: int,
        target_date: date,
        interval_minutes: int | None = None,
    ) -> list[str]:
        """Resolve a doctor's bookable slots for a date from their current availability."""
        rows = await self.client.list_doctor_availability(self.session.token, doctor_id)
        windows = [window for window in map(window_from_upstream, rows) if window is not None]
        return resolve_slots(
            windows,
            target_date,
            interval_minutes or settings.slot_interval_minutes,
        )

    async def submit(
        self,
        form: AppointmentBookingForm,
        available_slots: list[str] | None = None,
    ) -> Appointment:
        """
        Validate and submit a booking. No automatic retry.

        Args:
            form: Raw booking input
            available_slots: Freshly resolved slots for the date, if the caller has them

        Returns:
            The appointment created upstream

        Raises:
            BookingValidationError: If local validation fails (nothing is sent)
            SlotUnavailableError: If the start is not among ``available_slots``
            SubmissionError: If the upstream rejects the booking or cannot be reached
        """
        request = self.validate(form)
        if available_slots is not None:
            self.check_slot(request, available_slots)

        try:
            data = await self.client.create_appointment(
                self.session.token,
                request.to_upstream_payload(),
            )
        except UpstreamServiceError as e:
            error = submission_error_from(e)
            logger.warning(
                "booking_failed",
                patient_id=self.session.user_id,
                doctor_id=request.doctor_id,
                date=request.date.isoformat(),
                start_time=request.start_time.strftime("%H:%M"),
                upstream_status=e.status_code,
                error=error.message,
            )
            raise error from e

        appointment = Appointment.model_validate(data)
        logger.info(
            "booking_submitted",
            appointment_id=appointment.id,
            patient_id=self.session.user_id,
            doctor_id=request.doctor_id,
            date=request.date.isoformat(),
        )
        return appointment
