"""FastAPI dependencies for bearer authentication and role checks."""

import logging
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request, status

from src.clinic.container import ServiceContainer
from src.clinic.services.auth.guard import Deny, DenyReason
from src.clinic.services.directory import Role, UserRecord

logger = logging.getLogger(__name__)

_CREDENTIAL_REASONS = {DenyReason.NO_CREDENTIAL, DenyReason.INVALID_CREDENTIAL}


def get_services(request: Request) -> ServiceContainer:
    """
    Get the service container built during application startup.

    Raises:
        RuntimeError: If the application lifespan has not initialized services
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError(
            "Services not initialized. Ensure the application lifespan built the container."
        )
    return services


def require_roles(*roles: Role) -> Callable[[Request], Awaitable[UserRecord]]:
    """
    Build a dependency that admits only active users holding one of `roles`.

    Denials carry generic messages: 401 when the credential is missing or
    invalid, 403 for every other reason.

    Example:
        @router.get("/admin/stats")
        async def stats(user: UserRecord = Depends(require_roles(Role.ADMIN))):
            ...
    """
    allowed = frozenset(roles)

    async def dependency(request: Request) -> UserRecord:
        guard = get_services(request).guard
        decision = await guard.authorize(request.headers.get("Authorization"), allowed)

        if isinstance(decision, Deny):
            if decision.reason in _CREDENTIAL_REASONS:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid authentication credentials",
                    headers={"WWW-Authenticate": "Bearer"},
                )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized to access this resource",
            )

        request.state.user = decision.user
        return decision.user

    return dependency


get_current_user = require_roles(*Role)
require_admin = require_roles(Role.ADMIN)
