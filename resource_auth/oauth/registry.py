"""
Registry mapping protected resources to their trust policies.

The registry is built once from the full configuration and fails fast: any
invalid, duplicated or missing entry raises at construction, so the process
never serves requests under a broken trust configuration.

Two modes, decided once and never re-inspected per request:

* ``LEGACY`` - one authorization server, one ``TokenVerifier`` for everything.
* ``RESOURCES`` - one ``TokenVerifier`` per protected resource identifier.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence

from .auth_server import AuthServerConfig, validate_auth_server
from .errors import AuthServerError
from .jwks_cache import KeySetCache
from .metadata import AuthorizationServerMetadata, ProtectedResourceMetadata
from .metadata_cache import AuthServerMetadataCache
from .resource_metadata import ProtectedResourceConfig, create_resource_metadata_endpoint, resource_metadata_path
from .token_verifier import TokenVerifier

logger = logging.getLogger(__name__)


class VerifierMode(enum.Enum):
    LEGACY = "legacy"
    RESOURCES = "resources"


def _config_error(cause: str) -> AuthServerError:
    return AuthServerError("invalid_server_config", cause=cause)


class VerifierRegistry:
    """
    Owns every ``TokenVerifier`` plus the metadata and key-set caches they share.

    Caches are per registry (injected or created here), so two registries in
    the same process never share state.
    """

    def __init__(
        self,
        server: AuthServerConfig | None = None,
        protected_resources: ProtectedResourceConfig | Sequence[ProtectedResourceConfig] | None = None,
        metadata_cache: AuthServerMetadataCache | None = None,
        key_set_cache: KeySetCache | None = None,
    ) -> None:
        if server is None and protected_resources is None:
            raise _config_error("No authorization server or protected resource metadata is provided.")
        if server is not None and protected_resources is not None:
            raise _config_error(
                "Both `server` and `protected_resources` cannot be provided at the same time. "
                "Please migrate to using only `protected_resources`."
            )

        self.metadata_cache = metadata_cache if metadata_cache is not None else AuthServerMetadataCache()
        self.key_set_cache = key_set_cache if key_set_cache is not None else KeySetCache()

        self._server: AuthServerConfig | None = None
        self._legacy_verifier: TokenVerifier | None = None
        self._resources: tuple[ProtectedResourceConfig, ...] = ()
        self._verifiers: dict[str, TokenVerifier] = {}
        self._metadata_by_path: dict[str, ProtectedResourceMetadata] = {}

        if server is not None:
            logger.warning("The `server` config is deprecated. Please migrate to using only `protected_resources`.")
            validate_auth_server(server)
            self.mode = VerifierMode.LEGACY
            self._server = server
            self._legacy_verifier = self._new_verifier([server])
            return

        if isinstance(protected_resources, ProtectedResourceConfig):
            protected_resources = [protected_resources]
        self._resources = tuple(protected_resources)
        self._validate_resources(self._resources)
        self.mode = VerifierMode.RESOURCES
        for config in self._resources:
            self._verifiers[config.resource] = self._new_verifier(config.authorization_servers)
            metadata = config.to_metadata()
            self._metadata_by_path.setdefault(resource_metadata_path(metadata.resource), metadata)
        logger.info("Verifier registry ready resources=%d", len(self._verifiers))

    def _new_verifier(self, auth_servers: Sequence[AuthServerConfig]) -> TokenVerifier:
        return TokenVerifier(auth_servers, self.metadata_cache, self.key_set_cache)

    @staticmethod
    def _validate_resources(resources: Sequence[ProtectedResourceConfig]) -> None:
        if not resources:
            raise _config_error("The `protected_resources` list is empty.")

        seen_resources: set[str] = set()
        for config in resources:
            resource = config.resource
            if resource in seen_resources:
                raise _config_error(f"The resource metadata (`{resource}`) is duplicated.")
            seen_resources.add(resource)

            try:
                create_resource_metadata_endpoint(resource)
            except ValueError as exc:
                raise _config_error(f"The resource identifier (`{resource}`) is not an absolute URI.") from exc

            seen_issuers: set[str] = set()
            for server in config.authorization_servers:
                if server.issuer in seen_issuers:
                    raise _config_error(
                        f"The authorization server (`{server.issuer}`) for resource `{resource}` is duplicated."
                    )
                seen_issuers.add(server.issuer)
                try:
                    validate_auth_server(server)
                except AuthServerError as exc:
                    raise AuthServerError(
                        "invalid_server_config",
                        f"The authorization server (`{server.issuer}`) for resource `{resource}` is invalid.",
                        cause=exc,
                    ) from exc

    @property
    def resources(self) -> list[str]:
        return list(self._verifiers)

    def resolve_verifier(self, resource: str | None = None) -> TokenVerifier:
        """
        Return the ``TokenVerifier`` for ``resource``.

        In legacy mode the hint is ignored. In resources mode a missing hint
        and an unknown resource are both caller configuration errors.
        """
        if self.mode is VerifierMode.LEGACY:
            return self._legacy_verifier

        if not resource:
            raise _config_error(
                "A `resource` must be specified in the bearer auth configuration "
                "when using a `protected_resources` configuration."
            )
        verifier = self._verifiers.get(resource)
        if verifier is None:
            raise _config_error(
                f"No token verifier found for the specified resource: `{resource}`. Please ensure that "
                "this resource is correctly configured in `protected_resources`."
            )
        return verifier

    def server_metadata(self) -> AuthorizationServerMetadata:
        """Metadata of the legacy authorization server (fetched on first use for discovery configs)."""
        if self.mode is not VerifierMode.LEGACY:
            raise _config_error("No authorization server configuration is provided.")
        return self.metadata_cache.resolve(self._server)

    def protected_resource_metadata(self) -> list[ProtectedResourceMetadata]:
        if self.mode is not VerifierMode.RESOURCES:
            raise _config_error("No resource server configuration is provided.")
        return list(self._metadata_by_path.values())

    def resource_metadata_by_path(self) -> dict[str, ProtectedResourceMetadata]:
        """Well-known path -> metadata document, as served by the metadata endpoints."""
        return dict(self._metadata_by_path)

    def resource_metadata_url(self, resource: str | None) -> str | None:
        if self.mode is not VerifierMode.RESOURCES or not resource:
            return None
        return create_resource_metadata_endpoint(resource)
