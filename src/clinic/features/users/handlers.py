"""API handlers for user provisioning and the current user."""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from src.clinic.features.users.models import CreateUserRequest, ErrorResponse, UserResponse
from src.clinic.services.auth.dependencies import get_current_user, get_services
from src.clinic.services.directory import SIGNUP_ROLES, InvalidRoleError, NewUser, UserRecord
from src.clinic.services.rate_limiter import default_rate_limit, write_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

_SIGNUP_ROLE_VALUES = {role.value for role in SIGNUP_ROLES}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
@write_rate_limit
async def create_user(request: Request, req: CreateUserRequest) -> JSONResponse:
    """
    Provision a user record for an identity the provider already created.

    Only PATIENT and PROVIDER may be provisioned here; specialty is kept for
    providers only. Retrying with the same authId returns the existing record
    with 200 instead of failing.

    Args:
        req: email, role, authId, name and optional specialty

    Returns:
        201 with the created record, or 200 with the existing one

    Example Response:
        {
            "id": "0b9e2f7e-3a4c-4b8e-9d55-5bb0a1f1c2d3",
            "email": "jane.doe@example.com",
            "role": "PROVIDER",
            "name": "Jane Doe",
            "authId": "user_2abc",
            "specialty": "RADIOLOGY"
        }
    """
    if not isinstance(req.auth_id, str) or not req.auth_id:
        return _error(status.HTTP_400_BAD_REQUEST, "authId is required")

    if not isinstance(req.role, str) or req.role not in _SIGNUP_ROLE_VALUES:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid role")

    if not isinstance(req.email, str) or not req.email:
        return _error(status.HTTP_400_BAD_REQUEST, "email is required")

    if req.name is not None and not isinstance(req.name, str):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid name")

    if req.specialty is not None and not isinstance(req.specialty, str):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid specialty")

    try:
        sync = get_services(request).sync
        user, created = await sync.provision(
            NewUser(
                auth_id=req.auth_id,
                email=req.email,
                name=req.name,
                role=req.role,
                specialty=req.specialty,
            )
        )
    except InvalidRoleError:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid role")
    except Exception as e:
        logger.error(f"Error creating user {req.auth_id}: {e}", exc_info=True)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create user")

    if created:
        logger.info(f"Provisioned user {user.auth_id} ({user.role.value})")

    return JSONResponse(
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        content=UserResponse.from_record(user).model_dump(mode="json", by_alias=True),
    )


@router.get("/me", response_model=UserResponse)
@default_rate_limit
async def get_me(
    request: Request,
    current_user: UserRecord = Depends(get_current_user),
) -> UserResponse:
    """
    Get the caller's user record, creating it on first sight.

    Returns:
        The caller's record
    """
    return UserResponse.from_record(current_user)
