"""
Remote JWKS key sources, cached per JWKS URI.

Background:
    An authorization server signs every access token with a private key and
    publishes the matching **public** keys at its ``jwks_uri``. Verifying a
    token means finding the key whose ``kid`` (Key ID) matches the token
    header and checking the signature with it.

    ``RemoteKeySet`` is the handle for one JWKS URI. It fetches lazily, keeps
    the key set for ``ttl_seconds``, and when a token names a ``kid`` it has
    not seen it force-refreshes once (the server may have rotated keys)
    before giving up.

    ``KeySetCache`` keeps exactly one handle per URI for the whole process,
    so repeated verifications against the same issuer reuse the fetched keys.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import jwt
import requests
from jwt import PyJWK

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_TIMEOUT_SECONDS = 10.0


class RemoteKeySet:
    """
    Lazily-fetched JWKS with TTL and rotation-aware lookup.

    Raises ``jwt.PyJWKClientConnectionError`` when the key set cannot be
    fetched and ``jwt.PyJWKClientError`` when no usable key matches.
    """

    def __init__(
        self,
        jwks_uri: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.uri = jwks_uri
        self._ttl = ttl_seconds
        self._timeout = timeout
        self._data: dict[str, Any] | None = None
        self._fetched_at: float = 0.0

    def _fetch(self) -> dict[str, Any]:
        try:
            resp = requests.get(self.uri, timeout=self._timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise jwt.PyJWKClientConnectionError(
                f'Fail to fetch data from the url, err: "{exc}"'
            ) from exc
        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            raise jwt.PyJWKClientError("The JWKS endpoint did not return a key set")
        return data

    def _refresh(self) -> dict[str, Any]:
        """Force-refresh the key set regardless of TTL."""
        self._data = self._fetch()
        self._fetched_at = time.monotonic()
        logger.debug("JWKS refreshed uri=%s keys=%d", self.uri, len(self._data["keys"]))
        return self._data

    def _ensure_fresh(self) -> dict[str, Any]:
        now = time.monotonic()
        if self._data is None or (now - self._fetched_at) >= self._ttl:
            return self._refresh()
        return self._data

    @staticmethod
    def _signing_keys(data: dict[str, Any]) -> list[dict[str, Any]]:
        return [k for k in data.get("keys") or [] if isinstance(k, dict) and k.get("use", "sig") == "sig"]

    def _find_key(self, kid: str | None, data: dict[str, Any]) -> PyJWK | None:
        keys = self._signing_keys(data)
        if kid is None:
            # Only unambiguous when the set holds a single signing key.
            return PyJWK.from_dict(keys[0]) if len(keys) == 1 else None
        for key_dict in keys:
            if key_dict.get("kid") == kid:
                return PyJWK.from_dict(key_dict)
        return None

    def get_signing_key(self, kid: str | None) -> PyJWK:
        data = self._ensure_fresh()
        key = self._find_key(kid, data)
        if key is not None:
            return key

        if kid is not None:
            logger.info("kid not in cached JWKS; refreshing for possible key rotation uri=%s", self.uri)
            key = self._find_key(kid, self._refresh())
            if key is not None:
                return key

        raise jwt.PyJWKClientError(f'Unable to find a signing key that matches: "{kid}"')

    def get_signing_key_from_jwt(self, token: str) -> PyJWK:
        header = jwt.get_unverified_header(token)
        return self.get_signing_key(header.get("kid"))


class KeySetCache:
    """
    One ``RemoteKeySet`` per JWKS URI, for the lifetime of the process.

    Two threads racing on first use may both construct a handle; only the
    first one stored is ever returned. Construction performs no I/O.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._ttl = ttl_seconds
        self._timeout = timeout
        self._lock = threading.Lock()
        self._sources: dict[str, RemoteKeySet] = {}

    def get_key_source(self, jwks_uri: str) -> RemoteKeySet:
        source = self._sources.get(jwks_uri)
        if source is not None:
            return source
        candidate = RemoteKeySet(jwks_uri, ttl_seconds=self._ttl, timeout=self._timeout)
        with self._lock:
            return self._sources.setdefault(jwks_uri, candidate)
