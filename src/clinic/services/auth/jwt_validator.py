"""Local JWT verification using cached public keys for signature validation."""

import logging

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError
from pydantic import ValidationError

from src.clinic.services.auth.exceptions import InvalidCredentialError, NoCredentialError
from src.clinic.services.auth.jwks import JWKSCache
from src.clinic.services.auth.models import VerifiedClaims

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = ["RS256", "ES256"]


def extract_bearer_token(authorization: str | None) -> str:
    """
    Extract the token from an `Authorization: Bearer <token>` header value.

    Runs before any cryptographic work so malformed headers fail fast.

    Raises:
        NoCredentialError: If the header is missing, uses another scheme, or is empty
    """
    if not authorization:
        raise NoCredentialError("Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise NoCredentialError("Authorization header must be 'Bearer <token>'")

    return parts[1]


class JWTValidator:
    """
    Verifies JWT tokens locally without network calls.

    Validates signature, expiration, issuer, and audience claims. Every
    failure surfaces as the same InvalidCredentialError; the specific cause is
    logged for diagnosis only.

    Supports both RS256 (RSA) and ES256 (Elliptic Curve) signing algorithms.

    Attributes:
        jwks_cache: Cache holding the provider's public keys
        issuer: Expected issuer (iss claim)
        audience: Expected audience (aud claim)
        leeway: Clock skew tolerance in seconds (default: 10)

    Example:
        >>> validator = JWTValidator(jwks_cache, "https://project.supabase.co/auth/v1")
        >>> claims = validator.verify_token(jwt_token)
        >>> claims.subject
    """

    def __init__(
        self,
        jwks_cache: JWKSCache,
        issuer: str,
        audience: str = "authenticated",
        leeway: int = 10,
    ):
        self.jwks_cache = jwks_cache
        self.issuer = issuer
        self.audience = audience
        self.leeway = leeway

    def verify_token(self, token: str) -> VerifiedClaims:
        """
        Verify JWT token and return its claims.

        Performs the following validations:
        1. Decode JWT header to extract key ID (kid)
        2. Look up the signing key in the cache
        3. Verify signature using public key (RSA or EC)
        4. Validate expiration (exp claim, required)
        5. Validate issuer (iss claim)
        6. Validate audience (aud claim, required)
        7. Validate not-before if present (nbf claim)

        Args:
            token: JWT token string (without "Bearer " prefix)

        Returns:
            VerifiedClaims built from the token payload

        Raises:
            InvalidCredentialError: If the token fails any check
        """
        try:
            unverified_header = jwt.get_unverified_header(token)
            kid = unverified_header.get("kid")

            signing_key = self.jwks_cache.get_signing_key(kid)

            payload = jwt.decode(
                token,
                signing_key,
                algorithms=SUPPORTED_ALGORITHMS,
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_iat": True,
                    "verify_aud": True,
                    "verify_iss": True,
                    "require_exp": True,
                    "require_aud": True,
                    "require_iss": True,
                    "require_sub": True,
                    "leeway": self.leeway,
                },
            )
            claims = VerifiedClaims.from_payload(payload)

        except ExpiredSignatureError as e:
            self._log_rejection("jwt_expired", e)
            raise InvalidCredentialError() from e
        except JWTClaimsError as e:
            self._log_rejection("jwt_claims_invalid", e)
            raise InvalidCredentialError() from e
        except JWTError as e:
            self._log_rejection("jwt_verification_failed", e)
            raise InvalidCredentialError() from e
        except ValueError as e:
            # Unknown kid; also covers pydantic ValidationError
            error_type = (
                "jwt_payload_invalid" if isinstance(e, ValidationError) else "signing_key_not_found"
            )
            self._log_rejection(error_type, e)
            raise InvalidCredentialError() from e
        except Exception as e:
            logger.error(
                f"Unexpected error during JWT verification: {e}",
                exc_info=True,
                extra={"error_type": "jwt_verification_error"},
            )
            raise InvalidCredentialError() from e

        logger.debug(
            "JWT verified successfully",
            extra={"user_id": claims.subject, "kid": kid, "exp": payload.get("exp")},
        )
        return claims

    @staticmethod
    def _log_rejection(error_type: str, error: Exception) -> None:
        logger.warning(
            f"JWT verification failed: {error}",
            extra={"error_type": error_type, "error": str(error)},
        )
