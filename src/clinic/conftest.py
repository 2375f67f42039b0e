"""Pytest configuration and shared fixtures."""

import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from unittest.mock import Mock
from uuid import uuid4

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jose import jwt

from src.clinic.container import ServiceContainer
from src.clinic.main import create_app
from src.clinic.services.auth.guard import AuthorizationGuard
from src.clinic.services.auth.jwks import JWKSCache
from src.clinic.services.auth.jwt_validator import JWTValidator
from src.clinic.services.directory import (
    SIGNUP_ROLES,
    DuplicateIdentityError,
    NewUser,
    Role,
    UserNotFoundError,
    UserRecord,
    parse_role,
)
from src.clinic.services.directory.models import specialty_for
from src.clinic.services.rate_limiter import limiter
from src.clinic.services.sync import IdentitySyncService, RoleWritebackQueue

TEST_ISSUER = "https://test.supabase.co/auth/v1"
TEST_AUDIENCE = "authenticated"
TEST_KID = "test-key-1"


class FakeUserDirectory:
    """
    In-memory user directory enforcing the auth_id uniqueness constraint.

    Set `fail_with` to make every call raise, or `find_barrier` to hold the
    first `parties` lookups until they all arrive (forces a create race).
    """

    def __init__(self) -> None:
        self.records: dict[str, UserRecord] = {}
        self.create_calls = 0
        self.fail_with: Exception | None = None
        self.find_barrier: threading.Barrier | None = None
        self._find_calls = 0
        self._lock = threading.Lock()

    def add(self, auth_id: str, role: Role = Role.PATIENT, **fields: Any) -> UserRecord:
        record = UserRecord(
            id=uuid4(),
            auth_id=auth_id,
            email=fields.pop("email", f"{auth_id}@example.com"),
            role=role,
            email_verified=datetime.now(timezone.utc),
            **fields,
        )
        self.records[auth_id] = record
        return record

    def find_by_external_identity(self, auth_id: str) -> UserRecord | None:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            barrier = self.find_barrier
            use_barrier = barrier is not None and self._find_calls < barrier.parties
            self._find_calls += 1
        if use_barrier:
            barrier.wait(timeout=5)
        with self._lock:
            return self.records.get(auth_id)

    def create(self, new_user: NewUser) -> UserRecord:
        if self.fail_with is not None:
            raise self.fail_with
        role = parse_role(new_user.role, SIGNUP_ROLES)
        with self._lock:
            self.create_calls += 1
            if new_user.auth_id in self.records:
                raise DuplicateIdentityError(new_user.auth_id)
            record = UserRecord(
                id=uuid4(),
                auth_id=new_user.auth_id,
                email=new_user.email,
                name=new_user.name,
                role=role,
                specialty=specialty_for(role, new_user.specialty),
                email_verified=datetime.now(timezone.utc),
            )
            self.records[new_user.auth_id] = record
            return record

    def update_role(self, auth_id: str, role: Role | str, specialty: str | None = None) -> UserRecord:
        role = parse_role(role)
        return self._update(auth_id, role=role, specialty=specialty_for(role, specialty))

    def set_active(self, auth_id: str, is_active: bool) -> UserRecord:
        return self._update(auth_id, is_active=is_active)

    def _update(self, auth_id: str, **fields: Any) -> UserRecord:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            if auth_id not in self.records:
                raise UserNotFoundError(auth_id)
            record = self.records[auth_id].model_copy(update=fields)
            self.records[auth_id] = record
            return record


@pytest.fixture(autouse=True)
def disable_rate_limits():
    """Rate limits share in-memory storage across tests; turn them off."""
    limiter.enabled = False
    yield
    limiter.enabled = True


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key) -> str:
    return (
        rsa_private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@pytest.fixture
def make_token(private_key_pem: str) -> Callable[..., str]:
    """
    Sign a token with the test key.

    Example:
        >>> token = make_token("user_2abc", role="PATIENT")
    """

    def _make(
        subject: str = "user_test",
        role: str | None = None,
        email: str | None = "patient@example.com",
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "sub": subject,
            "iss": TEST_ISSUER,
            "aud": TEST_AUDIENCE,
            "iat": now,
            "exp": now + 3600,
            "email": email,
            "app_metadata": {"role": role} if role else {},
            "user_metadata": {"full_name": "Test User"},
        }
        headers = {"kid": overrides.pop("kid", TEST_KID)}
        key = overrides.pop("key", private_key_pem)
        claims.update(overrides)
        return jwt.encode(claims, key, algorithm="RS256", headers=headers)

    return _make


@pytest.fixture
def jwks_cache(public_key_pem: str) -> JWKSCache:
    cache = JWKSCache(cache_ttl=3600)
    cache.load_pem_key(public_key_pem, kid=TEST_KID)
    return cache


@pytest.fixture
def validator(jwks_cache: JWKSCache) -> JWTValidator:
    return JWTValidator(jwks_cache=jwks_cache, issuer=TEST_ISSUER, audience=TEST_AUDIENCE)


@pytest.fixture
def fake_directory() -> FakeUserDirectory:
    return FakeUserDirectory()


@pytest.fixture
def mock_analytics() -> Mock:
    return Mock()


@pytest.fixture
def mock_provider() -> Mock:
    provider = Mock()
    provider.update_role_metadata = Mock(return_value=None)
    return provider


@pytest.fixture
def writeback(mock_provider: Mock, mock_analytics: Mock) -> RoleWritebackQueue:
    return RoleWritebackQueue(mock_provider, max_attempts=3, analytics=mock_analytics)


@pytest.fixture
def sync_service(
    fake_directory: FakeUserDirectory, writeback: RoleWritebackQueue, mock_analytics: Mock
) -> IdentitySyncService:
    return IdentitySyncService(fake_directory, writeback, store_timeout=5.0, analytics=mock_analytics)


@pytest.fixture
def guard(
    validator: JWTValidator, sync_service: IdentitySyncService, mock_analytics: Mock
) -> AuthorizationGuard:
    return AuthorizationGuard(validator, sync_service, analytics=mock_analytics)


@pytest.fixture
def services(
    jwks_cache: JWKSCache,
    validator: JWTValidator,
    fake_directory: FakeUserDirectory,
    writeback: RoleWritebackQueue,
    sync_service: IdentitySyncService,
    guard: AuthorizationGuard,
    mock_analytics: Mock,
) -> ServiceContainer:
    return ServiceContainer(
        jwks_cache=jwks_cache,
        validator=validator,
        directory=fake_directory,
        writeback=writeback,
        sync=sync_service,
        guard=guard,
        analytics=mock_analytics,
        webhook_secret="test-webhook-secret",
    )


@pytest.fixture
def client(services: ServiceContainer) -> TestClient:
    """
    Provide FastAPI test client wired to in-memory services.

    Returns:
        TestClient instance for making API requests

    Example:
        >>> def test_health(client):
        >>>     response = client.get("/health")
        >>>     assert response.status_code == 200
    """
    return TestClient(create_app(services=services))
