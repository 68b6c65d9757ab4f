"""
Pytest fixtures for the test suite.

Tokens are real RS256 JWTs signed with a key generated once per session, so
signature checks run through PyJWT exactly as in production. Network access
(discovery documents, JWKS) is replaced with ``fake_response`` objects.
"""
from __future__ import annotations

import time
from unittest.mock import MagicMock

import jwt
import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from resource_auth.oauth.jwks_cache import KeySetCache, RemoteKeySet
from resource_auth.oauth.metadata import AuthorizationServerMetadata

KID = "test-key-1"


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def jwks(rsa_private_key) -> dict:
    jwk = RSAAlgorithm.to_jwk(rsa_private_key.public_key(), as_dict=True)
    jwk.update({"kid": KID, "use": "sig", "alg": "RS256"})
    return {"keys": [jwk]}


@pytest.fixture
def make_token(rsa_private_key):
    """Sign a JWT; defaults give a valid token that callers override per test."""

    def _make(issuer: str = "https://idp.example", *, kid: str | None = KID, key=None, **claims) -> str:
        now = int(time.time())
        payload = {
            "iss": issuer,
            "sub": "user-1",
            "client_id": "client-1",
            "iat": now,
            "exp": now + 3600,
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        headers = {"kid": kid} if kid else {}
        return jwt.encode(payload, key or rsa_private_key, algorithm="RS256", headers=headers)

    return _make


@pytest.fixture
def make_metadata():
    def _make(issuer: str = "https://idp.example", **overrides) -> AuthorizationServerMetadata:
        data = {
            "issuer": issuer,
            "authorization_endpoint": f"{issuer}/authorize",
            "token_endpoint": f"{issuer}/token",
            "jwks_uri": f"{issuer}/jwks",
            "registration_endpoint": f"{issuer}/register",
            "response_types_supported": ["code"],
            "code_challenge_methods_supported": ["S256"],
        }
        data.update(overrides)
        data = {k: v for k, v in data.items() if v is not None}
        return AuthorizationServerMetadata.model_validate(data)

    return _make


def fake_response(json_data=None, status_code: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    else:
        resp.raise_for_status.return_value = None
    return resp


@pytest.fixture
def response_factory():
    return fake_response


class RecordingKeySetCache(KeySetCache):
    """KeySetCache that records every URI asked for and serves a fixed JWKS without I/O."""

    def __init__(self, jwks: dict) -> None:
        super().__init__()
        self.jwks = jwks
        self.requested: list[str] = []

    def get_key_source(self, jwks_uri: str) -> RemoteKeySet:
        self.requested.append(jwks_uri)
        source = super().get_key_source(jwks_uri)
        source._data = self.jwks
        source._fetched_at = time.monotonic()
        return source


@pytest.fixture
def key_set_cache(jwks) -> RecordingKeySetCache:
    return RecordingKeySetCache(jwks)
