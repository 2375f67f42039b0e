"""Shared fixtures for authentication tests."""

from typing import Any

import pytest
from jose import jwk


@pytest.fixture
def jwks_response(public_key_pem: str) -> dict[str, Any]:
    """Provide a JWKS document containing the test public key twice under different kids."""
    key_data = jwk.construct(public_key_pem, algorithm="RS256").to_dict()
    return {
        "keys": [
            {**key_data, "kid": "key-1", "use": "sig"},
            {**key_data, "kid": "key-2", "use": "sig"},
        ]
    }


@pytest.fixture
def auth_headers(make_token) -> dict[str, str]:
    """Generate auth headers for a patient token."""
    return {"Authorization": f"Bearer {make_token('user_patient', role='PATIENT')}"}
