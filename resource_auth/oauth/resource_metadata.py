"""Protected resource configuration and its RFC 9728 metadata endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlsplit, urlunsplit

from .auth_server import AuthServerConfig
from .metadata import ProtectedResourceMetadata

RESOURCE_METADATA_BASE_PATH = "/.well-known/oauth-protected-resource"


@dataclass(frozen=True)
class ProtectedResourceConfig:
    """
    One protected resource and the authorization servers it trusts.

    ``authorization_servers`` hold full descriptors (used for verification);
    the published metadata only lists their issuers.
    """

    resource: str
    authorization_servers: tuple[AuthServerConfig, ...] = ()
    scopes_supported: tuple[str, ...] | None = None
    resource_name: str | None = None
    resource_documentation: str | None = None
    bearer_methods_supported: tuple[str, ...] | None = None
    extra: dict[str, object] = field(default_factory=dict, hash=False, compare=False)

    def to_metadata(self) -> ProtectedResourceMetadata:
        data: dict[str, object] = dict(self.extra)
        data["resource"] = self.resource
        if self.authorization_servers:
            data["authorization_servers"] = [s.issuer for s in self.authorization_servers]
        if self.scopes_supported is not None:
            data["scopes_supported"] = list(self.scopes_supported)
        if self.resource_name is not None:
            data["resource_name"] = self.resource_name
        if self.resource_documentation is not None:
            data["resource_documentation"] = self.resource_documentation
        if self.bearer_methods_supported is not None:
            data["bearer_methods_supported"] = list(self.bearer_methods_supported)
        return ProtectedResourceMetadata.model_validate(data)


def create_resource_metadata_endpoint(resource: str) -> str:
    """
    Return the protected resource metadata URL for a resource identifier.

    RFC 9728 section 3.1: the well-known segment goes between the host and the
    resource path; query and fragment are dropped.

        https://api.example.com         -> https://api.example.com/.well-known/oauth-protected-resource
        https://api.example.com/billing -> https://api.example.com/.well-known/oauth-protected-resource/billing
    """
    parts = urlsplit(resource)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Invalid resource identifier URI: {resource}")

    path = parts.path
    if path in ("", "/"):
        return urlunsplit((parts.scheme, parts.netloc, RESOURCE_METADATA_BASE_PATH, "", ""))
    return urlunsplit((parts.scheme, parts.netloc, RESOURCE_METADATA_BASE_PATH + path, "", ""))


def resource_metadata_path(resource: str) -> str:
    """Path component of ``create_resource_metadata_endpoint``, for mounting routes."""
    return urlsplit(create_resource_metadata_endpoint(resource)).path
