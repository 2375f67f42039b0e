"""User provisioning and current-user endpoints."""

from src.clinic.features.users.handlers import router

__all__ = ["router"]
