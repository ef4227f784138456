"""Doctor availability and slot endpoints (patient-facing)."""

from datetime import date

from fastapi import APIRouter, Query, status

from app.config import settings
from app.dependencies import AvailabilityServiceDep
from app.schemas.availability import AvailabilityWindow, SlotListResponse
from app.services.slot_resolver import day_of_week_for, resolve_slots

router = APIRouter()


@router.get(
    "/{doctor_id}/availability",
    response_model=list[AvailabilityWindow],
    status_code=status.HTTP_200_OK,
    summary="Get a doctor's weekly availability",
)
async def get_doctor_availability(
    doctor_id: int,
    service: AvailabilityServiceDep,
) -> list[AvailabilityWindow]:
    """
    Get the recurring weekly windows of a doctor.

    Args:
        doctor_id: Doctor ID
        service: Availability service

    Returns:
        Availability windows
    """
    return await service.list_for_doctor(doctor_id)


@router.get(
    "/{doctor_id}/slots",
    response_model=SlotListResponse,
    status_code=status.HTTP_200_OK,
    summary="Get bookable slots for a date",
)
async def get_doctor_slots(
    doctor_id: int,
    service: AvailabilityServiceDep,
    target_date: date = Query(..., alias="date"),
    interval: int | None = Query(None, ge=5, le=240),
) -> SlotListResponse:
    """
    Resolve a doctor's bookable start times for one calendar date.

    An empty ``slots`` list means nothing is available that day.

    Args:
        doctor_id: Doctor ID
        service: Availability service
        target_date: Date to resolve
        interval: Slot interval in minutes, defaults to the configured interval

    Returns:
        Bookable slots
    """
    interval_minutes = interval or settings.slot_interval_minutes
    windows = await service.list_for_doctor(doctor_id)
    return SlotListResponse(
        doctor_id=doctor_id,
        date=target_date,
        day_of_week=day_of_week_for(target_date),
        interval_minutes=interval_minutes,
        slots=resolve_slots(windows, target_date, interval_minutes),
    )
