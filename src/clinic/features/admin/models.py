"""Pydantic models for administrative user management."""

from pydantic import BaseModel, ConfigDict, Field

from src.clinic.services.directory import Role


class RoleChangeRequest(BaseModel):
    """Request model for an explicit role change."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"role": "PROVIDER", "specialty": "CARDIOLOGY"}}
    )

    role: Role = Field(description="New role for the user")
    specialty: str | None = Field(None, description="Provider specialty; ignored for other roles")


class StatusChangeRequest(BaseModel):
    """Request model for activating or deactivating a user."""

    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(alias="isActive")
