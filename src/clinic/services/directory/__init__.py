"""Local user record store access."""

from src.clinic.services.directory.exceptions import (
    DirectoryError,
    DirectoryUnavailableError,
    DuplicateIdentityError,
    InvalidRoleError,
    UserNotFoundError,
)
from src.clinic.services.directory.models import SIGNUP_ROLES, NewUser, Role, UserRecord
from src.clinic.services.directory.user_directory import UserDirectory, parse_role

__all__ = [
    "DirectoryError",
    "DirectoryUnavailableError",
    "DuplicateIdentityError",
    "InvalidRoleError",
    "UserNotFoundError",
    "SIGNUP_ROLES",
    "NewUser",
    "Role",
    "UserRecord",
    "UserDirectory",
    "parse_role",
]
