"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.portal_client import PortalClient
from app.core.security import SessionContext, session_from_token
from app.services.availability_service import AvailabilityService
from app.services.booking_service import BookingService
from app.services.test_request_service import TestRequestCoordinator

# Security
security = HTTPBearer(auto_error=False)


async def get_session(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> SessionContext:
    """
    Build the caller's session context from the bearer token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Role, identity and token of the caller

    Raises:
        HTTPException: If token is invalid or expired
    """
    session = session_from_token(credentials.credentials) if credentials else None
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def get_portal_client(request: Request) -> PortalClient:
    """Get the shared upstream client created at startup."""
    return PortalClient(request.app.state.portal_http)


# Type aliases for dependency injection
Session = Annotated[SessionContext, Depends(get_session)]
Portal = Annotated[PortalClient, Depends(get_portal_client)]


def get_availability_service(client: Portal, session: Session) -> AvailabilityService:
    """Availability service for the current caller."""
    return AvailabilityService(client, session)


def get_booking_service(client: Portal, session: Session) -> BookingService:
    """Booking service for the current caller."""
    return BookingService(client, session)


def get_test_request_coordinator(client: Portal, session: Session) -> TestRequestCoordinator:
    """Test request coordinator for the current caller."""
    return TestRequestCoordinator(client, session)


AvailabilityServiceDep = Annotated[AvailabilityService, Depends(get_availability_service)]
BookingServiceDep = Annotated[BookingService, Depends(get_booking_service)]
CoordinatorDep = Annotated[TestRequestCoordinator, Depends(get_test_request_coordinator)]
