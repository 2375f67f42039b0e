"""Rate limiting service for API endpoints."""

import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.clinic.config import settings
from src.clinic.services.directory import UserRecord

logger = logging.getLogger(__name__)


def get_user_id_or_ip(request: Request) -> str:
    """
    Extract the authenticated user's identity or fall back to IP address.

    This function is used as the key_func for rate limiting:
    - Authenticated requests: Rate limited per external identity
    - Unauthenticated requests: Rate limited per IP address

    Args:
        request: FastAPI request object

    Returns:
        Rate limit key
    """
    # Set by the role-check dependency
    user: UserRecord | None = getattr(request.state, "user", None)

    if user is not None:
        return f"user:{user.auth_id}"

    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_id_or_ip,
    default_limits=[],  # No global limits, we'll apply per-endpoint
    storage_uri="memory://",  # In-memory storage for single-instance deployment
    enabled=settings.rate_limit_enabled,
)


class RateLimitTiers:
    """Rate limit tiers for different endpoint categories."""

    # Standard authenticated endpoints (most GET operations)
    DEFAULT = ["100 per minute", "1000 per hour"]

    # State-changing operations (POST/PATCH), including provisioning
    WRITE = ["30 per minute", "200 per hour"]


# Note: These decorators require the endpoint to have a 'request: Request' parameter
default_rate_limit = limiter.limit(";".join(RateLimitTiers.DEFAULT))
write_rate_limit = limiter.limit(";".join(RateLimitTiers.WRITE))
