"""Administrative user management endpoints."""

from src.clinic.features.admin.handlers import router

__all__ = ["router"]
