"""Pydantic models for locally owned user records."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Access level governing authorization decisions."""

    PATIENT = "PATIENT"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"


# Roles a user may be provisioned with; ADMIN is only granted by role change.
SIGNUP_ROLES = frozenset({Role.PATIENT, Role.PROVIDER})


def specialty_for(role: Role, specialty: str | None) -> str | None:
    """Return the specialty to store for a role (providers only)."""
    if role is not Role.PROVIDER:
        return None
    return specialty or None


class UserRecord(BaseModel):
    """
    Locally owned, authoritative user representation.

    Attributes:
        id: Internal identifier assigned by the store
        auth_id: External identity issued by the identity provider (unique)
        email: Mirrored email address
        name: Mirrored display name
        role: Current access level
        specialty: Provider specialty, None for every other role
        is_active: False once an administrator deactivates the account
        email_verified: Set once at creation; the provider verified the email
    """

    id: UUID
    auth_id: str
    email: str
    name: str | None = None
    role: Role
    specialty: str | None = None
    is_active: bool = True
    email_verified: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NewUser(BaseModel):
    """Fields for creating a user record."""

    auth_id: str = Field(min_length=1)
    email: str
    name: str | None = None
    role: str
    specialty: str | None = None
