"""Authentication module for JWT-based authentication."""

from src.clinic.services.auth.exceptions import (
    AuthenticationError,
    InvalidCredentialError,
    NoCredentialError,
)
from src.clinic.services.auth.jwks import JWKSCache
from src.clinic.services.auth.jwt_validator import JWTValidator, extract_bearer_token
from src.clinic.services.auth.models import VerifiedClaims

__all__ = [
    "AuthenticationError",
    "InvalidCredentialError",
    "NoCredentialError",
    "JWKSCache",
    "JWTValidator",
    "extract_bearer_token",
    "VerifiedClaims",
]
