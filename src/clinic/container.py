"""Process-wide service construction.

Everything here is built once in the application lifespan and shared by
reference through `app.state.services`; request handlers never construct
clients of their own.
"""

import logging
from dataclasses import dataclass

from src.clinic.config import Settings
from src.clinic.services.analytics import PostHogService
from src.clinic.services.auth.guard import AuthorizationGuard
from src.clinic.services.auth.jwks import JWKSCache
from src.clinic.services.auth.jwt_validator import JWTValidator
from src.clinic.services.database import SupabaseQueryBuilder, create_supabase_admin_client
from src.clinic.services.directory import Role, UserDirectory
from src.clinic.services.sync import (
    IdentityProviderClient,
    IdentitySyncService,
    RoleWritebackQueue,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    jwks_cache: JWKSCache
    validator: JWTValidator
    directory: UserDirectory
    writeback: RoleWritebackQueue
    sync: IdentitySyncService
    guard: AuthorizationGuard
    analytics: PostHogService
    webhook_secret: str = ""

    async def start(self) -> None:
        await self.writeback.start()
        self.jwks_cache.start_background_refresh()

    async def close(self) -> None:
        await self.writeback.stop()
        await self.jwks_cache.close()


async def build_services(settings: Settings) -> ServiceContainer:
    """
    Construct all services from settings and load the verification keys.

    Raises:
        httpx.HTTPError: If the JWKS cannot be fetched at startup
    """
    client = create_supabase_admin_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
        timeout=settings.store_timeout_seconds,
    )
    analytics = PostHogService(settings.posthog_api_key, settings.posthog_host)

    if settings.jwt_public_key_pem:
        jwks_cache = JWKSCache(cache_ttl=settings.jwks_cache_ttl_seconds)
        jwks_cache.load_pem_key(settings.jwt_public_key_pem)
    else:
        jwks_cache = JWKSCache(settings.jwks_url, cache_ttl=settings.jwks_cache_ttl_seconds)
        await jwks_cache.refresh_keys()

    validator = JWTValidator(
        jwks_cache=jwks_cache,
        issuer=settings.resolved_jwt_issuer,
        audience=settings.jwt_audience,
        leeway=settings.jwt_leeway_seconds,
    )
    directory = UserDirectory(SupabaseQueryBuilder(client), table=settings.users_table)
    writeback = RoleWritebackQueue(
        IdentityProviderClient(client),
        max_attempts=settings.writeback_max_attempts,
        timeout=settings.provider_timeout_seconds,
        maxsize=settings.writeback_queue_size,
        analytics=analytics,
    )
    sync = IdentitySyncService(
        directory,
        writeback,
        store_timeout=settings.store_timeout_seconds,
        analytics=analytics,
    )
    guard = AuthorizationGuard(
        validator,
        sync,
        default_role=Role(settings.jit_default_role) if settings.jit_default_role else None,
        analytics=analytics,
    )

    logger.info(
        "Services initialized",
        extra={
            "issuer": settings.resolved_jwt_issuer,
            "audience": settings.jwt_audience,
            "static_key": bool(settings.jwt_public_key_pem),
        },
    )
    return ServiceContainer(
        jwks_cache=jwks_cache,
        validator=validator,
        directory=directory,
        writeback=writeback,
        sync=sync,
        guard=guard,
        analytics=analytics,
        webhook_secret=settings.auth_webhook_secret,
    )
