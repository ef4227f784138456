"""Session token handling.

Tokens are minted by the authentication service; this service only verifies
them and turns the claims into an explicit :class:`SessionContext`.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from jose import JWTError, jwt

from app.config import settings


class Role(str, Enum):
    """Portal user roles."""

    PATIENT = "patient"
    DOCTOR = "doctor"


@dataclass(frozen=True)
class SessionContext:
    """Who is calling, passed explicitly into services."""

    user_id: int
    role: Role
    token: str

    @property
    def is_doctor(self) -> bool:
        """Check if the caller is a doctor."""
        return self.role == Role.DOCTOR

    @property
    def is_patient(self) -> bool:
        """Check if the caller is a patient."""
        return self.role == Role.PATIENT


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update(
        {
            "exp": expire,
            "iat": datetime.now(UTC),
            "type": "access",
        }
    )

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT access token.

    Args:
        token: JWT token to decode

    Returns:
        Decoded payload or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None

    return payload


def session_from_token(token: str) -> SessionContext | None:
    """Build a session context from a bearer token, or None if it is unusable."""
    payload = decode_access_token(token)
    if payload is None:
        return None

    try:
        user_id = int(payload["sub"])
        role = Role(payload.get("role", Role.PATIENT.value))
    except (KeyError, TypeError, ValueError):
        return None

    return SessionContext(user_id=user_id, role=role, token=token)
