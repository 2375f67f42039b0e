"""Identity provider account event webhooks."""

from src.clinic.features.webhooks.handlers import router

__all__ = ["router"]
