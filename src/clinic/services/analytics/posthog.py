"""PostHog analytics service for security event tracking."""

import logging

import posthog

from src.clinic.config import settings

logger = logging.getLogger(__name__)


class PostHogService:
    """Service for tracking analytics events via PostHog. No-op without an API key."""

    def __init__(self, api_key: str | None = None, host: str | None = None) -> None:
        """
        Initialize PostHog service.

        Args:
            api_key: Project API key (defaults to settings.posthog_api_key)
            host: PostHog host (defaults to settings.posthog_host)
        """
        self.api_key = api_key if api_key is not None else settings.posthog_api_key
        if self.api_key:
            posthog.api_key = self.api_key
            posthog.host = host or settings.posthog_host

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def capture(self, distinct_id: str, event: str, properties: dict | None = None) -> None:
        """
        Track an event.

        Analytics must never break a request, so delivery errors are logged
        and dropped.

        Args:
            distinct_id: Unique identifier for the user (external identity or "anonymous")
            event: Event name (e.g., "authentication_failed", "user_provisioned")
            properties: Optional event properties

        Example:
            >>> service = PostHogService()
            >>> service.capture("user_2abc", "user_provisioned", {"role": "PATIENT"})
        """
        if not self.enabled:
            return

        try:
            posthog.capture(distinct_id=distinct_id, event=event, properties=properties or {})
        except Exception as e:
            logger.warning(f"Failed to send analytics event {event}: {e}")
