"""User directory adapter over the Supabase `users` table."""

import logging
from datetime import datetime, timezone
from typing import Any

import httpx
from postgrest.exceptions import APIError

from src.clinic.services.database.utils import SupabaseQueryBuilder
from src.clinic.services.directory.exceptions import (
    DirectoryUnavailableError,
    DuplicateIdentityError,
    InvalidRoleError,
    UserNotFoundError,
)
from src.clinic.services.directory.models import (
    SIGNUP_ROLES,
    NewUser,
    Role,
    UserRecord,
    specialty_for,
)

logger = logging.getLogger(__name__)

# PostgreSQL unique_violation
UNIQUE_VIOLATION = "23505"


def parse_role(value: Any, allowed: frozenset[Role] = frozenset(Role)) -> Role:
    """
    Parse a role value, rejecting anything outside `allowed`.

    Raises:
        InvalidRoleError: If the value is not a known role or is not allowed
    """
    try:
        role = Role(value)
    except ValueError as e:
        raise InvalidRoleError(value) from e
    if role not in allowed:
        raise InvalidRoleError(value)
    return role


class UserDirectory:
    """
    Create/read/update access to user records keyed by external identity.

    The store's unique constraint on `auth_id` is the only guard against
    concurrent first-sight creates; this adapter translates its violation into
    DuplicateIdentityError so callers can fall back to a read.

    Attributes:
        db: Query builder bound to the shared Supabase client
        table: Name of the users table

    Example:
        >>> directory = UserDirectory(SupabaseQueryBuilder(client))
        >>> user = directory.find_by_external_identity("user_2abc")
    """

    def __init__(self, db: SupabaseQueryBuilder, table: str = "users"):
        self.db = db
        self.table = table

    def find_by_external_identity(self, auth_id: str) -> UserRecord | None:
        """Return the record for `auth_id`, or None if it has never been created."""
        try:
            row = self.db.get_by_field(self.table, "auth_id", auth_id)
        except (APIError, httpx.HTTPError) as e:
            logger.error(
                f"User lookup failed for {auth_id}: {e}",
                extra={"error_type": "directory_read_failed", "auth_id": auth_id},
            )
            raise DirectoryUnavailableError(f"User lookup failed: {e}") from e
        return UserRecord(**row) if row else None

    def create(self, new_user: NewUser) -> UserRecord:
        """
        Create a user record.

        Specialty supplied for a non-provider role is dropped, not rejected.

        Args:
            new_user: Fields for the new record

        Returns:
            The created record

        Raises:
            InvalidRoleError: If role is not PATIENT or PROVIDER
            DuplicateIdentityError: If a record for the auth_id already exists
            DirectoryUnavailableError: On any other store failure
        """
        role = parse_role(new_user.role, SIGNUP_ROLES)
        data = {
            "auth_id": new_user.auth_id,
            "email": new_user.email,
            "name": new_user.name,
            "role": role.value,
            "specialty": specialty_for(role, new_user.specialty),
            "is_active": True,
            "email_verified": datetime.now(timezone.utc).isoformat(),
        }

        try:
            row = self.db.insert_record(self.table, data)
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.info(
                    f"User {new_user.auth_id} already exists",
                    extra={"auth_id": new_user.auth_id},
                )
                raise DuplicateIdentityError(new_user.auth_id) from e
            logger.error(
                f"Failed to create user {new_user.auth_id}: {e}",
                extra={"error_type": "directory_create_failed", "auth_id": new_user.auth_id},
            )
            raise DirectoryUnavailableError(f"User create failed: {e}") from e
        except httpx.HTTPError as e:
            logger.error(
                f"Failed to create user {new_user.auth_id}: {e}",
                extra={"error_type": "directory_create_failed", "auth_id": new_user.auth_id},
            )
            raise DirectoryUnavailableError(f"User create failed: {e}") from e

        if not row:
            raise DirectoryUnavailableError("User create returned no record")

        logger.info(
            f"Created user {new_user.auth_id} with role {role.value}",
            extra={"auth_id": new_user.auth_id, "role": role.value},
        )
        return UserRecord(**row)

    def update_role(self, auth_id: str, role: Role | str, specialty: str | None = None) -> UserRecord:
        """
        Change a user's role; specialty is cleared unless the new role is PROVIDER.

        Raises:
            InvalidRoleError: If role is not a known role
            UserNotFoundError: If no record exists for auth_id
            DirectoryUnavailableError: On store failure
        """
        role = parse_role(role)
        return self._update(
            auth_id,
            {"role": role.value, "specialty": specialty_for(role, specialty)},
        )

    def set_active(self, auth_id: str, is_active: bool) -> UserRecord:
        """Activate or deactivate a user; records are never deleted."""
        return self._update(auth_id, {"is_active": is_active})

    def _update(self, auth_id: str, data: dict[str, Any]) -> UserRecord:
        try:
            rows = self.db.update_by_filter(self.table, {"auth_id": auth_id}, data)
        except (APIError, httpx.HTTPError) as e:
            logger.error(
                f"Failed to update user {auth_id}: {e}",
                extra={"error_type": "directory_update_failed", "auth_id": auth_id},
            )
            raise DirectoryUnavailableError(f"User update failed: {e}") from e

        if not rows:
            raise UserNotFoundError(auth_id)

        logger.info(f"Updated user {auth_id}", extra={"auth_id": auth_id, "fields": list(data)})
        return UserRecord(**rows[0])
