"""Request-time authorization decisions."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from src.clinic.services.analytics import PostHogService
from src.clinic.services.auth.exceptions import InvalidCredentialError, NoCredentialError
from src.clinic.services.auth.jwt_validator import JWTValidator, extract_bearer_token
from src.clinic.services.directory import InvalidRoleError, Role, UserRecord
from src.clinic.services.sync import IdentitySyncService, SyncFailedError

logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    """Why a request was denied. Logged, never returned to the client."""

    NO_CREDENTIAL = "no_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    RESOLUTION_FAILED = "resolution_failed"
    INACTIVE = "inactive"
    INSUFFICIENT_ROLE = "insufficient_role"


@dataclass(frozen=True)
class Allow:
    user: UserRecord


@dataclass(frozen=True)
class Deny:
    reason: DenyReason


Decision = Allow | Deny


class AuthorizationGuard:
    """
    Decides whether a request may access a route requiring a set of roles.

    Checks run in order and stop at the first failure: bearer extraction,
    token verification, user resolution (lazily creating the record on first
    sight), active flag, role membership. The guard keeps no state between
    calls; the only side effect is the lazy create inside the sync service.

    Attributes:
        validator: Credential verifier
        sync: Identity sync service
        default_role: Role for first-sight users whose token has no usable role hint

    Example:
        >>> guard = AuthorizationGuard(validator, sync)
        >>> decision = await guard.authorize(request.headers.get("Authorization"), {Role.ADMIN})
        >>> if isinstance(decision, Allow):
        ...     user = decision.user
    """

    def __init__(
        self,
        validator: JWTValidator,
        sync: IdentitySyncService,
        default_role: Role | None = Role.PATIENT,
        analytics: PostHogService | None = None,
    ):
        self.validator = validator
        self.sync = sync
        self.default_role = default_role
        self.analytics = analytics or PostHogService()

    async def authorize(self, authorization: str | None, required_roles: Iterable[Role]) -> Decision:
        """
        Authorize one request.

        Args:
            authorization: Raw Authorization header value (may be None)
            required_roles: Roles allowed on the route

        Returns:
            Allow carrying the resolved user, or Deny with the reason
        """
        try:
            token = extract_bearer_token(authorization)
        except NoCredentialError as e:
            return self._deny(DenyReason.NO_CREDENTIAL, "anonymous", str(e))

        try:
            claims = self.validator.verify_token(token)
        except InvalidCredentialError:
            return self._deny(DenyReason.INVALID_CREDENTIAL, "anonymous")

        try:
            user = await self.sync.ensure_synced(
                claims,
                requested_role=self._requested_role(claims.role_hint),
                profile_hints={"email": claims.email, "name": claims.display_name},
            )
        except (SyncFailedError, InvalidRoleError) as e:
            return self._deny(DenyReason.RESOLUTION_FAILED, claims.subject, str(e))

        if not user.is_active:
            return self._deny(DenyReason.INACTIVE, claims.subject)

        if user.role not in set(required_roles):
            return self._deny(
                DenyReason.INSUFFICIENT_ROLE, claims.subject, f"role {user.role.value}"
            )

        return Allow(user=user)

    def _requested_role(self, hint: str | None) -> Role | str | None:
        # The hint only matters for a record that does not exist yet
        if hint in {role.value for role in Role}:
            return hint
        return self.default_role

    def _deny(self, reason: DenyReason, distinct_id: str, detail: str = "") -> Deny:
        logger.warning(
            f"Authorization denied ({reason.value}) for {distinct_id}"
            + (f": {detail}" if detail else ""),
            extra={"error_type": "authorization_denied", "reason": reason.value},
        )
        self.analytics.capture(
            distinct_id=distinct_id,
            event="authorization_denied",
            properties={"reason": reason.value},
        )
        return Deny(reason=reason)
