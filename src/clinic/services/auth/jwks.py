"""JWKS (JSON Web Key Set) fetching and caching for JWT verification."""

import asyncio
import logging
from datetime import datetime, timezone

import httpx
from jose import jwk
from jose.backends.base import Key

logger = logging.getLogger(__name__)


class JWKSCache:
    """
    Holds the identity provider's public keys for signature verification.

    Keys are loaded out of band: fetched from the JWKS endpoint at startup and
    then periodically by a background task, or loaded once from a configured
    PEM key. Lookups never touch the network, so token verification stays a
    local computation.

    Attributes:
        jwks_url: URL to fetch JWKS from (typically /.well-known/jwks.json)
        cache_ttl: Interval between background refreshes in seconds
        _keys: Cached keys (kid -> key) - supports RSA and EC keys
        _last_refresh: Timestamp of last successful load
        _http_client: HTTP client for fetching JWKS
        _refresh_task: Background refresh task, if started

    Example:
        >>> cache = JWKSCache("https://project.supabase.co/auth/v1/.well-known/jwks.json")
        >>> await cache.refresh_keys()
        >>> cache.start_background_refresh()
        >>> signing_key = cache.get_signing_key("key-id-123")
    """

    def __init__(self, jwks_url: str | None = None, cache_ttl: int = 3600):
        """
        Initialize JWKS cache.

        Args:
            jwks_url: URL to fetch JWKS from (None for static keys only)
            cache_ttl: Refresh interval in seconds (default: 1 hour)
        """
        self.jwks_url = jwks_url
        self.cache_ttl = cache_ttl
        self._keys: dict[str, Key] = {}
        self._last_refresh: datetime | None = None
        self._http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=30.0, connect=10.0, write=10.0)
        )
        self._refresh_task: asyncio.Task | None = None

    def get_signing_key(self, kid: str | None) -> Key:
        """
        Get a cached signing key by key ID (kid).

        A token without a kid is accepted only when exactly one key is cached.

        Args:
            kid: Key ID from JWT header

        Returns:
            Public key for signature verification (RSA or EC)

        Raises:
            ValueError: If no matching key is cached
        """
        if kid is None:
            if len(self._keys) == 1:
                return next(iter(self._keys.values()))
            raise ValueError(
                f"JWT header has no 'kid' and {len(self._keys)} keys are cached"
            )

        key = self._keys.get(kid)
        if key is None:
            raise ValueError(
                f"Key ID '{kid}' not found in JWKS. Available keys: {list(self._keys.keys())}"
            )
        return key

    def load_pem_key(self, pem: str, kid: str = "static", algorithm: str = "RS256") -> None:
        """
        Load a single PEM-encoded public key, replacing any cached keys.

        Args:
            pem: PEM public key
            kid: Key ID to store it under
            algorithm: RS256 or ES256
        """
        self._keys = {kid: jwk.construct(pem, algorithm=algorithm)}
        self._last_refresh = datetime.now(timezone.utc)
        logger.info("Loaded static public key", extra={"kid": kid, "alg": algorithm})

    async def refresh_keys(self) -> None:
        """
        Fetch JWKS from the identity provider and update cache.

        Updates cache atomically; a failed fetch leaves the previous keys in place.

        Raises:
            httpx.HTTPError: If HTTP request fails
            ValueError: If no JWKS URL is configured or the response is invalid
        """
        if not self.jwks_url:
            raise ValueError("No JWKS URL configured")

        try:
            logger.info(f"Fetching JWKS from {self.jwks_url}")
            response = await self._http_client.get(self.jwks_url)
            response.raise_for_status()

            jwks_data = response.json()
            keys_list = jwks_data.get("keys", [])

            if not keys_list:
                logger.warning(
                    "JWKS response contains no keys. Token verification will fail "
                    "until keys are available.",
                    extra={"jwks_url": self.jwks_url},
                )
                self._keys = {}
                self._last_refresh = datetime.now(timezone.utc)
                return

            new_keys: dict[str, Key] = {}
            for key_data in keys_list:
                kid = key_data.get("kid")
                if not kid:
                    logger.warning("JWKS key missing 'kid', skipping")
                    continue

                kty = key_data.get("kty")
                if kty == "EC":
                    algorithm = "ES256"
                elif kty == "RSA":
                    algorithm = "RS256"
                else:
                    algorithm = key_data.get("alg", "RS256")

                new_keys[kid] = jwk.construct(key_data, algorithm=algorithm)

                logger.debug(
                    f"Loaded key {kid} (type: {kty}, algorithm: {algorithm})",
                    extra={"kid": kid, "kty": kty, "alg": algorithm},
                )

            # Atomic update
            self._keys = new_keys
            self._last_refresh = datetime.now(timezone.utc)

            logger.info(
                "JWKS cache refreshed successfully",
                extra={
                    "key_count": len(new_keys),
                    "key_ids": list(new_keys.keys()),
                    "ttl_seconds": self.cache_ttl,
                },
            )

        except httpx.HTTPError as e:
            logger.error(
                f"Failed to fetch JWKS from {self.jwks_url}: {e}",
                exc_info=True,
                extra={"error_type": "jwks_fetch_failed"},
            )
            raise

        except Exception as e:
            logger.error(
                f"Failed to parse JWKS: {e}",
                exc_info=True,
                extra={"error_type": "jwks_parse_failed"},
            )
            raise

    def start_background_refresh(self) -> None:
        """Start refreshing keys every `cache_ttl` seconds until `close()`."""
        if self._refresh_task is None and self.jwks_url:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cache_ttl)
            try:
                await self.refresh_keys()
            except Exception:
                # Already logged; keep serving the previous keys
                continue

    async def close(self) -> None:
        """
        Stop background refresh and close the HTTP client.

        Should be called during application shutdown.
        """
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        await self._http_client.aclose()
        logger.info("JWKS cache closed")
