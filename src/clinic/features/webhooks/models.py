"""Pydantic models for identity provider webhooks."""

from typing import Any

from pydantic import BaseModel


class AuthUserData(BaseModel):
    """User payload carried by account events."""

    id: str
    email: str | None = None
    app_metadata: dict[str, Any] = {}
    user_metadata: dict[str, Any] = {}


class AuthEvent(BaseModel):
    """Account event sent by the identity provider."""

    type: str
    data: AuthUserData


class WebhookResponse(BaseModel):
    received: bool = True
    created: bool | None = None
