"""Pydantic models for the users feature."""

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.clinic.services.directory import Role, UserRecord


class CreateUserRequest(BaseModel):
    """
    Request model for provisioning a user.

    Fields are untyped here so missing or mistyped values produce a 400 with a
    specific message instead of a generic validation error; the handler checks
    each one.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "email": "jane.doe@example.com",
                "role": "PROVIDER",
                "authId": "user_2abc",
                "name": "Jane Doe",
                "specialty": "RADIOLOGY",
            }
        },
    )

    email: Any = None
    role: Any = None
    auth_id: Any = Field(None, alias="authId")
    name: Any = None
    specialty: Any = None


class UserResponse(BaseModel):
    """Response model for a user record."""

    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    email: str
    role: Role
    name: str | None = None
    auth_id: str = Field(alias="authId")
    specialty: str | None = None

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            name=user.name,
            auth_id=user.auth_id,
            specialty=user.specialty,
        )


class ErrorResponse(BaseModel):
    """Structured error body for provisioning failures."""

    error: str
