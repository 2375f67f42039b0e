"""Reconciles provider identities with locally owned user records."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

from starlette.concurrency import run_in_threadpool

from src.clinic.services.analytics import PostHogService
from src.clinic.services.auth.models import VerifiedClaims
from src.clinic.services.directory import (
    SIGNUP_ROLES,
    DuplicateIdentityError,
    InvalidRoleError,
    NewUser,
    Role,
    UserDirectory,
    UserNotFoundError,
    UserRecord,
    parse_role,
)
from src.clinic.services.sync.exceptions import SyncFailedError
from src.clinic.services.sync.writeback import RoleWritebackQueue

logger = logging.getLogger(__name__)


def _retrieve_outcome(task: asyncio.Future) -> None:
    # A call abandoned on timeout may still fail later; consume its result
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"User store call finished with error: {task.exception()}")


T = TypeVar("T")

# Raised by the directory with a meaning callers act on; everything else is SyncFailedError.
_PASSTHROUGH_ERRORS = (DuplicateIdentityError, InvalidRoleError, UserNotFoundError)


class IdentitySyncService:
    """
    Ensures exactly one local user record exists per external identity.

    Records are created on first sight and returned unchanged afterwards;
    attributes are mirrored at creation only. Roles change only through
    `change_role`, never from token claims. After every create or role change
    the role is queued for write-back to the provider.

    Directory calls run in the thread pool, are bounded by `store_timeout`, and
    are shielded from cancellation so an aborted request cannot leave a
    half-created record behind.

    Example:
        >>> sync = IdentitySyncService(directory, writeback)
        >>> user = await sync.ensure_synced(claims, requested_role="PATIENT")
    """

    def __init__(
        self,
        directory: UserDirectory,
        writeback: RoleWritebackQueue,
        store_timeout: float = 5.0,
        analytics: PostHogService | None = None,
    ):
        self.directory = directory
        self.writeback = writeback
        self.store_timeout = store_timeout
        self.analytics = analytics or PostHogService()

    async def ensure_synced(
        self,
        claims: VerifiedClaims,
        requested_role: Role | str | None = None,
        profile_hints: dict[str, Any] | None = None,
    ) -> UserRecord:
        """
        Return the user record for the claims' subject, creating it on first sight.

        Args:
            claims: Verified token claims
            requested_role: Role for a new record (PATIENT or PROVIDER)
            profile_hints: Optional "email", "name" and "specialty" overriding claim values

        Returns:
            The existing or newly created record

        Raises:
            InvalidRoleError: If a record must be created and the role is not allowed
            SyncFailedError: If the store fails or times out
        """
        existing = await self._call_store(self.directory.find_by_external_identity, claims.subject)
        if existing is not None:
            return existing

        role = parse_role(requested_role, SIGNUP_ROLES)
        hints = profile_hints or {}
        email = hints.get("email") or claims.email
        if not email:
            raise SyncFailedError(f"No email available to provision {claims.subject}")

        new_user = NewUser(
            auth_id=claims.subject,
            email=email,
            name=hints.get("name") or claims.display_name,
            role=role.value,
            specialty=hints.get("specialty"),
        )
        user, _ = await self._create_or_fetch(new_user)
        return user

    async def provision(self, new_user: NewUser) -> tuple[UserRecord, bool]:
        """
        Explicitly create a user record (administrative provisioning).

        Retried requests are idempotent: an existing record is returned instead.

        Returns:
            (record, created) where created is False if the identity already existed

        Raises:
            InvalidRoleError: If role is not PATIENT or PROVIDER
            SyncFailedError: If the store fails or times out
        """
        parse_role(new_user.role, SIGNUP_ROLES)
        return await self._create_or_fetch(new_user)

    async def change_role(
        self, auth_id: str, role: Role | str, specialty: str | None = None
    ) -> UserRecord:
        """
        Explicit role reconciliation: update the local record, then the provider.

        Raises:
            InvalidRoleError: If role is unknown
            UserNotFoundError: If no record exists
            SyncFailedError: If the store fails or times out
        """
        user = await self._call_store(self.directory.update_role, auth_id, role, specialty)
        self.writeback.enqueue(user.auth_id, user.role)
        logger.info(
            f"Role for {auth_id} changed to {user.role.value}",
            extra={"auth_id": auth_id, "role": user.role.value},
        )
        self.analytics.capture(
            distinct_id=auth_id, event="user_role_changed", properties={"role": user.role.value}
        )
        return user

    async def set_active(self, auth_id: str, is_active: bool) -> UserRecord:
        """Activate or deactivate a user record."""
        user = await self._call_store(self.directory.set_active, auth_id, is_active)
        self.analytics.capture(
            distinct_id=auth_id,
            event="user_activated" if is_active else "user_deactivated",
        )
        return user

    async def _create_or_fetch(self, new_user: NewUser) -> tuple[UserRecord, bool]:
        try:
            user = await self._call_store(self.directory.create, new_user)
        except DuplicateIdentityError:
            # Lost a create race (or a retried request); read instead of retrying the create
            logger.info(
                f"User {new_user.auth_id} created concurrently, re-fetching",
                extra={"auth_id": new_user.auth_id},
            )
            existing = await self._call_store(
                self.directory.find_by_external_identity, new_user.auth_id
            )
            if existing is None:
                raise SyncFailedError(
                    f"User {new_user.auth_id} reported as duplicate but not found"
                )
            return existing, False

        self.writeback.enqueue(user.auth_id, user.role)
        self.analytics.capture(
            distinct_id=user.auth_id,
            event="user_provisioned",
            properties={"role": user.role.value},
        )
        return user, True

    async def _call_store(self, func: Callable[..., T], *args: Any) -> T:
        task = asyncio.ensure_future(run_in_threadpool(func, *args))
        task.add_done_callback(_retrieve_outcome)
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.store_timeout)
        except _PASSTHROUGH_ERRORS:
            raise
        except asyncio.TimeoutError as e:
            logger.error(
                f"User store call {func.__name__} timed out after {self.store_timeout}s",
                extra={"error_type": "store_timeout", "operation": func.__name__},
            )
            raise SyncFailedError(f"User store timed out during {func.__name__}") from e
        except Exception as e:
            logger.error(
                f"User store call {func.__name__} failed: {e}",
                extra={"error_type": "store_call_failed", "operation": func.__name__},
            )
            raise SyncFailedError(f"User store call {func.__name__} failed") from e
