"""
Trust policy for one protected resource.

A ``TokenVerifier`` holds the authorization servers trusted for a resource and
produces the function that verifies bearer tokens against them. Verification
is two-phase:

1. Read the token's ``iss`` *without* verifying anything and check it against
   the trusted issuers. A token from an unknown server is rejected with
   ``invalid_issuer`` before any key material is fetched.
2. Resolve that issuer's metadata, take its ``jwks_uri`` and let the JWT
   primitive verify the signature and claims with the matching key source.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import jwt

from .auth_server import AuthServerConfig
from .errors import AuthServerError, BearerAuthError, TokenVerificationError
from .jwks_cache import KeySetCache
from .metadata_cache import AuthServerMetadataCache
from .verify_jwt import VerifyAccessToken, VerifyJwtOptions, create_verify_jwt

logger = logging.getLogger(__name__)


class TokenVerifier:
    def __init__(
        self,
        auth_servers: Sequence[AuthServerConfig],
        metadata_cache: AuthServerMetadataCache,
        key_set_cache: KeySetCache,
    ) -> None:
        self._auth_servers = tuple(auth_servers)
        self._metadata_cache = metadata_cache
        self._key_set_cache = key_set_cache

    @property
    def auth_servers(self) -> tuple[AuthServerConfig, ...]:
        return self._auth_servers

    @property
    def issuers(self) -> list[str]:
        return [server.issuer for server in self._auth_servers]

    def find_auth_server(self, issuer: str) -> AuthServerConfig | None:
        for server in self._auth_servers:
            if server.issuer == issuer:
                return server
        return None

    def validate_jwt_issuer(self, issuer: str) -> None:
        """
        Raise ``BearerAuthError("invalid_issuer")`` unless ``issuer`` is trusted.

        The error cause lists every trusted issuer to help debugging; it is
        only surfaced to clients when error details are enabled.
        """
        if self.find_auth_server(issuer) is None:
            raise BearerAuthError("invalid_issuer", cause={"expected": self.issuers, "actual": issuer})

    def create_verify_jwt_function(self, options: VerifyJwtOptions | None = None) -> VerifyAccessToken:
        def verify(token: str):
            issuer = self._get_unverified_issuer(token)
            self.validate_jwt_issuer(issuer)

            server = self.find_auth_server(issuer)
            metadata = self._metadata_cache.resolve(server)
            if not metadata.jwks_uri:
                logger.error("Trusted authorization server has no jwks_uri; check configuration issuer=%s", issuer)
                raise AuthServerError(
                    "missing_jwks_uri",
                    cause=f"The authorization server (`{issuer}`) does not have a JWKS URI.",
                )

            key_source = self._key_set_cache.get_key_source(metadata.jwks_uri)
            return create_verify_jwt(key_source, options, issuer=issuer)(token)

        return verify

    @staticmethod
    def _get_unverified_issuer(token: str) -> str:
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise TokenVerificationError("invalid_token", cause="The token is not a well-formed JWT.") from e

        issuer = payload.get("iss")
        if not isinstance(issuer, str) or not issuer:
            raise TokenVerificationError(
                "invalid_token", cause="The JWT payload does not contain the `iss` field or it is malformed."
            )
        return issuer
