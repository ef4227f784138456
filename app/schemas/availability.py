"""Availability schemas for request/response validation."""

from datetime import date, time
from enum import IntEnum

from pydantic import AliasChoices, BaseModel, Field, field_serializer, model_validator


class DayOfWeek(IntEnum):
    """Day of week, Monday-origin (same as ``date.weekday()`` and upstream storage)."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class AvailabilityWindowBase(BaseModel):
    """Base schema for a recurring weekly availability window."""

    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    is_available: bool = True

    @model_validator(mode="after")
    def validate_time_range(self) -> "AvailabilityWindowBase":
        """Reject windows whose end is not after their start."""
        if self.start_time >= self.end_time:
            raise ValueError("End time must be after start time")
        return self

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: time) -> str:
        """Serialize times as HH:MM."""
        return value.strftime("%H:%M")

    def same_schedule(self, other: "AvailabilityWindowBase") -> bool:
        """Check whether two windows describe the same weekly interval."""
        return (
            self.day_of_week == other.day_of_week
            and self.start_time == other.start_time
            and self.end_time == other.end_time
            and self.is_available == other.is_available
        )


class AvailabilityWindow(AvailabilityWindowBase):
    """Availability window; ``id`` is None for unsaved drafts."""

    id: int | None = None
    doctor_id: int | None = Field(
        default=None,
        validation_alias=AliasChoices("doctor_id", "doctor"),
    )

    model_config = {"from_attributes": True}


class AvailabilitySaveRequest(BaseModel):
    """The doctor's complete desired set of windows."""

    windows: list[AvailabilityWindow] = Field(default_factory=list)


class AvailabilityChangeSet(BaseModel):
    """Operations needed to turn the current windows into the desired ones."""

    to_create: list[AvailabilityWindow] = Field(default_factory=list)
    to_update: list[AvailabilityWindow] = Field(default_factory=list)
    to_delete: list[int] = Field(default_factory=list)
    unchanged: list[int] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """Check if nothing needs to be applied."""
        return not (self.to_create or self.to_update or self.to_delete)


class AvailabilityChangeFailure(BaseModel):
    """A single change that the upstream rejected."""

    operation: str
    window_id: int | None = None
    message: str


class AvailabilitySaveResult(BaseModel):
    """Outcome of applying a change set."""

    created: int = 0
    updated: int = 0
    deleted: int = 0
    unchanged: int = 0
    failed: list[AvailabilityChangeFailure] = Field(default_factory=list)
    windows: list[AvailabilityWindow] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Check if every change was applied."""
        return not self.failed


class SlotListResponse(BaseModel):
    """Bookable start times for one doctor on one date."""

    doctor_id: int
    date: date
    day_of_week: DayOfWeek
    interval_minutes: int
    slots: list[str]
