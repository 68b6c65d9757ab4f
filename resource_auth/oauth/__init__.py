"""
Standalone trust-resolution and bearer-token verification for resource servers.

This package has no dependency on other app packages (resource_auth.security,
routers, etc.). Build a ``VerifierRegistry`` from your protected resources,
resolve a ``TokenVerifier`` per resource and feed its verify function to a
``BearerAuthHandler``.
"""

from .auth_server import (
    AuthServerConfig,
    DiscoveryAuthServer,
    ResolvedAuthServer,
    validate_auth_server,
    validate_server_config,
)
from .bearer import BearerAuthConfig, BearerAuthHandler, ErrorResponse, get_bearer_token, handle_bearer_auth
from .context import IdentityContext
from .discovery import fetch_server_config, fetch_server_config_by_well_known_url
from .errors import AuthServerError, BearerAuthError, ConfigError, ResourceAuthError, TokenVerificationError
from .jwks_cache import KeySetCache, RemoteKeySet
from .metadata import AuthorizationServerMetadata, ProtectedResourceMetadata, parse_server_metadata
from .metadata_cache import AuthServerMetadataCache
from .registry import VerifierMode, VerifierRegistry
from .resource_metadata import ProtectedResourceConfig, create_resource_metadata_endpoint
from .token_verifier import TokenVerifier
from .verify_jwt import VerifyJwtOptions, create_verify_jwt

__all__ = [
    "AuthServerConfig",
    "AuthServerError",
    "AuthServerMetadataCache",
    "AuthorizationServerMetadata",
    "BearerAuthConfig",
    "BearerAuthError",
    "BearerAuthHandler",
    "ConfigError",
    "DiscoveryAuthServer",
    "ErrorResponse",
    "IdentityContext",
    "KeySetCache",
    "ProtectedResourceConfig",
    "ProtectedResourceMetadata",
    "RemoteKeySet",
    "ResolvedAuthServer",
    "ResourceAuthError",
    "TokenVerificationError",
    "TokenVerifier",
    "VerifierMode",
    "VerifierRegistry",
    "VerifyJwtOptions",
    "create_resource_metadata_endpoint",
    "create_verify_jwt",
    "fetch_server_config",
    "fetch_server_config_by_well_known_url",
    "get_bearer_token",
    "handle_bearer_auth",
    "parse_server_metadata",
    "validate_auth_server",
    "validate_server_config",
]
