"""
Unit tests for bearer token verification (services/auth_service.py and
middleware/auth.py).
"""

from unittest.mock import patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError

from approval_engine.middleware.auth import get_current_user
from approval_engine.services import auth_service
from approval_engine.services.auth_service import verify_access_token

CLAIMS = {
    "sub": "b0000000-0000-0000-0000-000000000001",
    "tenant_id": "a0000000-0000-0000-0000-000000000001",
    "role": "manager",
    "email": "manager@acme.com",
    "type": "access",
}


def _decoded(payload):
    return patch.object(auth_service, "decode_token", return_value=payload)


def test_valid_access_token():
    with _decoded(dict(CLAIMS)):
        assert verify_access_token("t")["role"] == "manager"


def test_refresh_token_is_rejected():
    with _decoded({**CLAIMS, "type": "refresh"}):
        with pytest.raises(JWTError):
            verify_access_token("t")


def test_missing_tenant_claim_is_rejected():
    payload = {k: v for k, v in CLAIMS.items() if k != "tenant_id"}
    with _decoded(payload):
        with pytest.raises(JWTError, match="tenant_id"):
            verify_access_token("t")


@pytest.mark.asyncio
async def test_get_current_user_maps_claims():
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="t")
    with _decoded(dict(CLAIMS)):
        user = await get_current_user(creds)
    assert user == {
        "user_id": CLAIMS["sub"],
        "tenant_id": CLAIMS["tenant_id"],
        "role": "manager",
        "email": "manager@acme.com",
    }


@pytest.mark.asyncio
async def test_get_current_user_invalid_token():
    creds = HTTPAuthorizationCredentials(scheme="Bearer", credentials="garbage")
    with patch.object(auth_service, "decode_token", side_effect=JWTError("bad signature")):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(creds)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail["error"]["code"] == "AUTH_TOKEN_INVALID"
