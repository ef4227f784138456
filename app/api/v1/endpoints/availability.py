"""Availability management endpoints (doctor portal)."""

from fastapi import APIRouter, Query, status

from app.dependencies import AvailabilityServiceDep
from app.schemas.availability import (
    AvailabilitySaveRequest,
    AvailabilitySaveResult,
    AvailabilityWindow,
    DayOfWeek,
)

router = APIRouter()


@router.get(
    "/me",
    response_model=list[AvailabilityWindow],
    status_code=status.HTTP_200_OK,
    summary="List my availability",
)
async def list_my_availability(service: AvailabilityServiceDep) -> list[AvailabilityWindow]:
    """
    List the signed-in doctor's windows.

    Args:
        service: Availability service

    Returns:
        Availability windows
    """
    return await service.list_mine()


@router.get(
    "/me/draft",
    response_model=AvailabilityWindow,
    status_code=status.HTTP_200_OK,
    summary="Get a default window for a day",
)
async def get_availability_draft(
    service: AvailabilityServiceDep,
    day_of_week: DayOfWeek = Query(...),
) -> AvailabilityWindow:
    """Unsaved 09:00-17:00 window the editor starts from."""
    return service.new_draft(day_of_week)


@router.put(
    "/me",
    response_model=AvailabilitySaveResult,
    status_code=status.HTTP_200_OK,
    summary="Save my availability",
)
async def save_my_availability(
    data: AvailabilitySaveRequest,
    service: AvailabilityServiceDep,
) -> AvailabilitySaveResult:
    """
    Replace the signed-in doctor's windows with the submitted set.

    Only the differences are applied. Individual failures are reported in
    ``failed`` while the other changes are kept.

    Args:
        data: Complete desired set of windows
        service: Availability service

    Returns:
        Save outcome and the stored windows
    """
    return await service.save(data.windows)


@router.delete(
    "/me/{window_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an availability window",
)
async def delete_my_window(window_id: int, service: AvailabilityServiceDep) -> None:
    """
    Delete one of the signed-in doctor's windows.

    Args:
        window_id: Window ID
        service: Availability service
    """
    await service.delete_window(window_id)
