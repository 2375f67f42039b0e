"""API handlers for administrative user management."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from src.clinic.features.admin.models import RoleChangeRequest, StatusChangeRequest
from src.clinic.features.users.models import UserResponse
from src.clinic.services.auth.dependencies import get_services, require_admin
from src.clinic.services.directory import UserNotFoundError, UserRecord
from src.clinic.services.rate_limiter import write_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["admin"])


@router.patch("/{auth_id}/role", response_model=UserResponse)
@write_rate_limit
async def change_user_role(
    request: Request,
    auth_id: str,
    req: RoleChangeRequest,
    admin: UserRecord = Depends(require_admin),
) -> UserResponse:
    """
    Change a user's role and propagate it to the identity provider.

    This is the only path that changes a stored role; role claims in tokens
    are never applied automatically.

    Args:
        auth_id: External identity of the target user
        req: New role and optional specialty

    Returns:
        The updated record

    Raises:
        HTTPException: 404 if the user does not exist
        HTTPException: 500 if the store fails
    """
    try:
        user = await get_services(request).sync.change_role(auth_id, req.role, req.specialty)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from e
    except Exception as e:
        logger.error(f"Error changing role for {auth_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to change role. Please try again.",
        ) from e

    logger.info(
        f"Admin {admin.auth_id} set role of {auth_id} to {user.role.value}",
        extra={"admin_id": admin.auth_id, "auth_id": auth_id, "role": user.role.value},
    )
    return UserResponse.from_record(user)


@router.patch("/{auth_id}/status", response_model=UserResponse)
@write_rate_limit
async def change_user_status(
    request: Request,
    auth_id: str,
    req: StatusChangeRequest,
    admin: UserRecord = Depends(require_admin),
) -> UserResponse:
    """
    Activate or deactivate a user. Deactivated users are denied on every route.

    Raises:
        HTTPException: 400 if an admin tries to deactivate themselves
        HTTPException: 404 if the user does not exist
        HTTPException: 500 if the store fails
    """
    if auth_id == admin.auth_id and not req.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Administrators cannot deactivate themselves",
        )

    try:
        user = await get_services(request).sync.set_active(auth_id, req.is_active)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found") from e
    except Exception as e:
        logger.error(f"Error updating status for {auth_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user status. Please try again.",
        ) from e

    logger.info(
        f"Admin {admin.auth_id} set is_active={req.is_active} for {auth_id}",
        extra={"admin_id": admin.auth_id, "auth_id": auth_id},
    )
    return UserResponse.from_record(user)
