"""Turn recurring weekly availability into bookable slots for one date."""

from collections.abc import Iterable, Iterator
from datetime import date, datetime, time, timedelta

from app.schemas.availability import AvailabilityWindow, DayOfWeek

DEFAULT_INTERVAL_MINUTES = 30


def day_of_week_for(target_date: date) -> DayOfWeek:
    """Map a calendar date to the canonical Monday-origin day of week."""
    return DayOfWeek(target_date.weekday())


def _window_slots(window: AvailabilityWindow, step: timedelta) -> Iterator[str]:
    # Anchor on an arbitrary date so hour boundaries roll over correctly
    current = datetime.combine(date.min, window.start_time)
    end = datetime.combine(date.min, window.end_time)
    while current + step <= end:
        yield current.strftime("%H:%M")
        current += step


def resolve_slots(
    windows: Iterable[AvailabilityWindow],
    target_date: date,
    interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
) -> list[str]:
    """
    Resolve the bookable start times for a date.

    Slots from each matching, enabled window are generated in order and
    concatenated; overlapping windows may therefore yield duplicates or
    out-of-order times. A slot is only offered when a full interval fits
    before the window's end.

    Args:
        windows: Doctor's recurring availability windows
        target_date: Calendar date being booked
        interval_minutes: Slot length and step

    Returns:
        ``HH:MM`` start times, possibly empty

    Raises:
        ValueError: If ``interval_minutes`` is not positive
    """
    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")

    day = day_of_week_for(target_date)
    step = timedelta(minutes=interval_minutes)

    slots: list[str] = []
    for window in windows:
        if window.day_of_week != day or not window.is_available:
            continue
        slots.extend(_window_slots(window, step))
    return slots


def window_from_upstream(raw: dict) -> AvailabilityWindow | None:
    """Parse an upstream window, skipping rows whose times are inverted or malformed."""
    try:
        return AvailabilityWindow.model_validate(raw)
    except ValueError:
        return None


def end_of_slot(start: time, interval_minutes: int) -> time:
    """Compute the end of a slot starting at ``start``."""
    return (datetime.combine(date.min, start) + timedelta(minutes=interval_minutes)).time()
