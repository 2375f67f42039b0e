"""Supabase client construction."""

from supabase import Client, ClientOptions, create_client


def create_supabase_admin_client(url: str, service_role_key: str, timeout: float) -> Client:
    """
    Create a Supabase client with the service role key.

    Construct once during application startup and share the instance by
    reference; request handlers must not build their own clients.

    This client bypasses Row-Level Security (RLS) policies and also carries the
    auth admin API used to write user metadata back to the identity provider.

    Args:
        url: Supabase project URL
        service_role_key: Service role key (full database access)
        timeout: PostgREST request timeout in seconds

    Returns:
        Configured Supabase client

    Example:
        >>> client = create_supabase_admin_client(settings.supabase_url, key, timeout=5.0)
        >>> response = client.table("users").select("*").eq("auth_id", "abc").execute()
    """
    options = ClientOptions(
        postgrest_client_timeout=timeout,
        auto_refresh_token=False,
        persist_session=False,
    )
    return create_client(url, service_role_key, options=options)
