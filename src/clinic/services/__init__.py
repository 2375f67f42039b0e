"""Shared services module for external integrations."""

from src.clinic.services.analytics import PostHogService

__all__ = [
    "PostHogService",
]
