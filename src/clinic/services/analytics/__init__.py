"""Analytics integrations."""

from src.clinic.services.analytics.posthog import PostHogService

__all__ = ["PostHogService"]
