"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # System Configuration
    api_v1_prefix: str = "/api/v1"
    debug: bool = False
    cors_origins: str = "http://localhost:3000"
    rate_limit_enabled: bool = True

    # Supabase Configuration (identity provider + user store)
    supabase_url: str = "https://test.supabase.co"
    supabase_service_role_key: str = "test-service-role-key"
    users_table: str = "users"

    # JWT Verification Configuration
    jwt_issuer: str | None = None  # Defaults to {supabase_url}/auth/v1
    jwt_audience: str = "authenticated"
    jwt_leeway_seconds: int = 10  # Clock skew tolerance
    jwks_cache_ttl_seconds: int = 3600  # 1 hour
    jwt_public_key_pem: str | None = None  # Static key, skips JWKS fetch when set

    # Collaborator call bounds
    store_timeout_seconds: float = 5.0
    provider_timeout_seconds: float = 5.0

    # Provider metadata write-back
    writeback_max_attempts: int = 3
    writeback_queue_size: int = 1000

    # Role assigned on first sight when the token carries no usable role hint.
    # Set to empty to refuse lazy provisioning without a hint.
    jit_default_role: str | None = "PATIENT"

    # Shared secret for provider account webhooks
    auth_webhook_secret: str = ""

    # PostHog Configuration
    posthog_api_key: str | None = None
    posthog_host: str = "https://app.posthog.com"

    @property
    def resolved_jwt_issuer(self) -> str:
        """Expected `iss` claim; Supabase issues tokens from its auth endpoint."""
        return self.jwt_issuer or f"{self.supabase_url}/auth/v1"

    @property
    def jwks_url(self) -> str:
        """Supabase JWKS endpoint."""
        return f"{self.supabase_url}/auth/v1/.well-known/jwks.json"


settings = Settings()
