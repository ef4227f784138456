"""Appointment booking endpoints."""

from fastapi import APIRouter, status

from app.config import settings
from app.dependencies import BookingServiceDep
from app.schemas.appointments import (
    Appointment,
    AppointmentBookingForm,
    BookingValidationResponse,
)

router = APIRouter()


@router.post(
    "/validate",
    response_model=BookingValidationResponse,
    status_code=status.HTTP_200_OK,
    summary="Validate a booking without submitting it",
)
async def validate_booking(
    data: AppointmentBookingForm,
    service: BookingServiceDep,
) -> BookingValidationResponse:
    """
    Run local booking validation and return the derived request.

    Args:
        data: Booking form
        service: Booking service

    Returns:
        The validated request including its end time

    Raises:
        BookingValidationError: With a message per failing field
    """
    return BookingValidationResponse(request=service.validate(data))


@router.post(
    "",
    response_model=Appointment,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
)
async def create_appointment(
    data: AppointmentBookingForm,
    service: BookingServiceDep,
) -> Appointment:
    """
    Validate and submit a booking.

    The form is checked locally first; nothing is sent upstream when it is
    invalid. When slot verification is enabled the doctor's slots for the
    date are resolved again and the start time must be one of them. A form
    carrying ``interval_minutes`` is checked against slots of that interval
    and gets an appointment of that length.

    Args:
        data: Booking form
        service: Booking service

    Returns:
        Created appointment
    """
    available_slots = None
    if settings.booking_verify_slot:
        request = service.validate(data)
        available_slots = await service.current_slots(
            request.doctor_id,
            request.date,
            data.interval_minutes,
        )
    return await service.submit(data, available_slots)
