"""Data models for authentication."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel


class VerifiedClaims(BaseModel):
    """
    Validated payload extracted from a bearer token for one request.

    Never persisted. Any role carried in the metadata is a hint only; the
    local user record stays authoritative.

    Attributes:
        subject: External identity from 'sub' claim
        issuer: 'iss' claim
        audience: 'aud' claim (string or list, as issued)
        expires_at: 'exp' claim as an aware datetime
        email: 'email' claim if present
        app_metadata: Provider-controlled metadata (written by this service)
        user_metadata: User-editable metadata (full_name, avatar_url, ...)
        raw: The complete verified payload

    Example:
        >>> claims = VerifiedClaims.from_payload(
        ...     {"sub": "user_2abc", "iss": "https://x.supabase.co/auth/v1",
        ...      "aud": "authenticated", "exp": 9999999999}
        ... )
        >>> claims.subject
        'user_2abc'
    """

    subject: str
    issuer: str
    audience: str | list[str]
    expires_at: datetime
    email: str | None = None
    app_metadata: dict[str, Any] = {}
    user_metadata: dict[str, Any] = {}
    raw: dict[str, Any] = {}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "VerifiedClaims":
        return cls(
            subject=payload["sub"],
            issuer=payload["iss"],
            audience=payload["aud"],
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            email=payload.get("email"),
            app_metadata=payload.get("app_metadata") or {},
            user_metadata=payload.get("user_metadata") or {},
            raw=payload,
        )

    @property
    def role_hint(self) -> str | None:
        """Role asserted by the provider, if any."""
        return self.app_metadata.get("role") or self.user_metadata.get("role")

    @property
    def display_name(self) -> str | None:
        return self.user_metadata.get("full_name") or self.user_metadata.get("name")
