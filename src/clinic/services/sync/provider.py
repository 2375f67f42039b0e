"""Identity provider admin client (Supabase Auth)."""

import logging

from supabase import Client

from src.clinic.services.directory.models import Role

logger = logging.getLogger(__name__)


class IdentityProviderClient:
    """
    Writes user metadata back to the identity provider.

    The role is stored in `app_metadata`, which users cannot edit and which
    the provider copies into subsequently issued tokens.

    Example:
        >>> provider = IdentityProviderClient(admin_client)
        >>> provider.update_role_metadata("user_2abc", Role.PROVIDER)
    """

    def __init__(self, client: Client):
        self.client = client

    def update_role_metadata(self, auth_id: str, role: Role) -> None:
        """
        Set `app_metadata.role` for a provider user.

        Raises:
            Exception: Whatever the auth admin API raises; callers retry
        """
        self.client.auth.admin.update_user_by_id(auth_id, {"app_metadata": {"role": role.value}})
        logger.debug(
            f"Provider metadata updated for {auth_id}",
            extra={"auth_id": auth_id, "role": role.value},
        )
