"""Identity synchronization between the provider and the local user store."""

from src.clinic.services.sync.exceptions import SyncFailedError
from src.clinic.services.sync.identity_sync import IdentitySyncService
from src.clinic.services.sync.provider import IdentityProviderClient
from src.clinic.services.sync.writeback import RoleWriteback, RoleWritebackQueue

__all__ = [
    "SyncFailedError",
    "IdentitySyncService",
    "IdentityProviderClient",
    "RoleWriteback",
    "RoleWritebackQueue",
]
