"""Appointment schemas for request/response validation."""

import re
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_serializer, field_validator

TIME_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")

REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500
NOTES_MAX_LENGTH = 1000


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class AppointmentType(str, Enum):
    """How the consultation takes place."""

    IN_PERSON = "in_person"
    VIRTUAL = "virtual"


class AppointmentBookingForm(BaseModel):
    """
    Raw booking input as entered by the patient.

    Deliberately lenient: every rule is checked by the booking service so all
    problems can be reported together, field by field.
    """

    doctor_id: int | None = None
    date: Any = None
    start_time: Any = None
    appointment_type: AppointmentType = AppointmentType.IN_PERSON
    reason: str = ""
    notes: str | None = None
    insurance_reference_id: Any = None
    # Slot interval the start time was picked from; also the appointment length
    interval_minutes: int | None = Field(default=None, ge=5, le=240)


class AppointmentBookingDraft(BaseModel):
    """Booking fields that passed validation, before the end time is derived."""

    doctor_id: int = Field(..., gt=0)
    date: date
    start_time: time
    appointment_type: AppointmentType = AppointmentType.IN_PERSON
    reason: str
    notes: str | None = None
    insurance_reference_id: int | None = None

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, v: Any) -> date:
        """Parse the date and reject days before today."""
        if isinstance(v, datetime):
            v = v.date()
        if not isinstance(v, date):
            if not v or not isinstance(v, str):
                raise ValueError("Please select an appointment date")
            try:
                v = date.fromisoformat(v.strip())
            except ValueError:
                raise ValueError("Invalid date format") from None

        # Calendar-day comparison, time of day is irrelevant
        if v < date.today():
            raise ValueError("Appointment date cannot be in the past")
        return v

    @field_validator("start_time", mode="before")
    @classmethod
    def validate_start_time(cls, v: Any) -> time:
        """Require a 24-hour HH:MM start time."""
        if isinstance(v, time):
            return v.replace(second=0, microsecond=0)
        if not v or not isinstance(v, str):
            raise ValueError("Please select an appointment time")
        if not TIME_PATTERN.match(v.strip()):
            raise ValueError("Invalid time format")
        hours, minutes = v.strip().split(":")
        return time(int(hours), int(minutes))

    @field_validator("reason", mode="before")
    @classmethod
    def validate_reason(cls, v: Any) -> str:
        """Check the trimmed reason length."""
        reason = "" if v is None else str(v).strip()
        if len(reason) < REASON_MIN_LENGTH:
            raise ValueError(f"Reason must be at least {REASON_MIN_LENGTH} characters long")
        if len(reason) > REASON_MAX_LENGTH:
            raise ValueError(f"Reason must not exceed {REASON_MAX_LENGTH} characters")
        return reason

    @field_validator("notes", mode="before")
    @classmethod
    def validate_notes(cls, v: Any) -> str | None:
        """Trim notes; blank notes are dropped."""
        if v is None:
            return None
        notes = str(v).strip()
        if len(notes) > NOTES_MAX_LENGTH:
            raise ValueError(f"Notes must not exceed {NOTES_MAX_LENGTH} characters")
        return notes or None

    @field_validator("insurance_reference_id", mode="before")
    @classmethod
    def normalize_insurance_reference(cls, v: Any) -> int | None:
        """Keep positive integer references; anything else becomes None."""
        if v is None or isinstance(v, bool):
            return None
        try:
            reference = int(str(v).strip())
        except ValueError:
            return None
        return reference if reference > 0 else None


class AppointmentBookingRequest(AppointmentBookingDraft):
    """A validated booking, ready to submit. Never modified after creation."""

    end_time: time

    model_config = {"frozen": True}

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: time) -> str:
        """Serialize times as HH:MM."""
        return value.strftime("%H:%M")

    def to_upstream_payload(self) -> dict[str, Any]:
        """Build the create-appointment body for the system of record."""
        payload: dict[str, Any] = {
            "doctor": self.doctor_id,
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "appointment_type": self.appointment_type.value,
            "reason": self.reason,
            "user_insurance_id": self.insurance_reference_id,
        }
        if self.notes:
            payload["notes"] = self.notes
        return payload


class Appointment(BaseModel):
    """Appointment as returned by the system of record."""

    id: int
    doctor_id: int | None = Field(default=None, validation_alias=AliasChoices("doctor_id", "doctor"))
    patient_id: int | None = Field(default=None, validation_alias=AliasChoices("patient_id", "user"))
    date: date
    start_time: time
    end_time: time
    appointment_type: AppointmentType = AppointmentType.IN_PERSON
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    reason: str
    notes: str | None = None
    followup_required: bool = False
    doctor_name: str | None = None
    patient_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: time) -> str:
        """Serialize times as HH:MM."""
        return value.strftime("%H:%M")


class BookingValidationResponse(BaseModel):
    """Result of a dry-run validation."""

    valid: bool = True
    request: AppointmentBookingRequest
