"""
Authorization server descriptors and their configuration checks.

A descriptor is either *resolved* (metadata already known) or *discovery*
(issuer + type only; metadata is fetched lazily on first use). Both expose
``issuer`` without any network I/O, which is what issuer trust decisions key on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Union
from urllib.parse import urlsplit

from .errors import AuthServerError
from .metadata import AuthorizationServerMetadata, FieldError, parse_server_metadata

logger = logging.getLogger(__name__)

AuthServerType = Literal["oauth", "oidc"]
AUTH_SERVER_TYPES: frozenset[str] = frozenset({"oauth", "oidc"})


@dataclass(frozen=True)
class ResolvedAuthServer:
    type: AuthServerType
    metadata: AuthorizationServerMetadata

    @property
    def issuer(self) -> str:
        return self.metadata.issuer

    @classmethod
    def from_dict(cls, type: AuthServerType, data: object) -> ResolvedAuthServer:
        parsed = parse_server_metadata(data)
        if not parsed.ok:
            raise AuthServerError(
                "invalid_server_metadata",
                "The server metadata does not conform to the expected schema: "
                + ", ".join(f"{e.field or '<root>'}: {e.message}" for e in parsed.errors),
                cause=[e.to_dict() for e in parsed.errors],
            )
        return cls(type=type, metadata=parsed.metadata)


@dataclass(frozen=True)
class DiscoveryAuthServer:
    type: AuthServerType
    issuer: str


AuthServerConfig = Union[ResolvedAuthServer, DiscoveryAuthServer]


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    description: str
    cause: tuple[FieldError, ...] = ()

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"code": self.code, "description": self.description}
        if self.cause:
            data["cause"] = [e.to_dict() for e in self.cause]
        return data


_ERROR_DESCRIPTIONS = {
    "invalid_server_metadata": "The server metadata is not a valid object or does not conform to the expected schema.",
    "invalid_issuer_url": "The issuer is not an absolute http(s) URL.",
    "invalid_server_type": 'The server type must be "oauth" or "oidc".',
    "code_response_type_not_supported": 'The server does not support the "code" response type.',
    "authorization_code_grant_not_supported": 'The server does not support the "authorization_code" grant type.',
}

_WARNING_DESCRIPTIONS = {
    "pkce_not_supported": "The server does not advertise Proof Key for Code Exchange (PKCE) support.",
    "s256_code_challenge_method_not_supported": 'The server does not support the "S256" PKCE code challenge method.',
    "dynamic_registration_not_supported": "Dynamic Client Registration (RFC 7591) is not supported by the server.",
}

_SUCCESS_DESCRIPTIONS = {
    "server_metadata_valid": "The server metadata is valid and conforms to the expected schema.",
    "discovery_config_valid": "The discovery configuration is valid; metadata will be fetched on first use.",
    "code_response_type_supported": 'The "code" response type is supported by the server.',
    "authorization_code_grant_supported": 'The "authorization_code" grant type is supported by the server.',
    "pkce_supported": "Proof Key for Code Exchange (PKCE) is supported by the server.",
    "s256_code_challenge_method_supported": 'The "S256" PKCE code challenge method is supported by the server.',
    "dynamic_registration_supported": "Dynamic Client Registration (RFC 7591) is supported by the server.",
}


def _issue(table: dict[str, str], code: str, cause: tuple[FieldError, ...] = ()) -> ValidationIssue:
    return ValidationIssue(code=code, description=table[code], cause=cause)


@dataclass(frozen=True)
class ServerConfigValidationResult:
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    successes: tuple[ValidationIssue, ...] = field(default=())

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, object]:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def is_http_url(value: object) -> bool:
    if not isinstance(value, str) or not value:
        return False
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def validate_server_config(config: AuthServerConfig, verbose: bool = False) -> ServerConfigValidationResult:
    """
    Check a single authorization server descriptor.

    PKCE and dynamic registration are only relevant to clients of the
    authorization server, so their absence is reported as a warning.
    """
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    successes: list[ValidationIssue] = []

    def result() -> ServerConfigValidationResult:
        return ServerConfigValidationResult(
            errors=tuple(errors),
            warnings=tuple(warnings),
            successes=tuple(successes) if verbose else (),
        )

    if config.type not in AUTH_SERVER_TYPES:
        errors.append(_issue(_ERROR_DESCRIPTIONS, "invalid_server_type"))

    if isinstance(config, DiscoveryAuthServer):
        if not is_http_url(config.issuer):
            errors.append(_issue(_ERROR_DESCRIPTIONS, "invalid_issuer_url"))
        elif not errors:
            successes.append(_issue(_SUCCESS_DESCRIPTIONS, "discovery_config_valid"))
        return result()

    parsed = parse_server_metadata(config.metadata)
    if not parsed.ok:
        errors.append(_issue(_ERROR_DESCRIPTIONS, "invalid_server_metadata", parsed.errors))
        return result()
    metadata = parsed.metadata
    successes.append(_issue(_SUCCESS_DESCRIPTIONS, "server_metadata_valid"))

    if not is_http_url(metadata.issuer):
        errors.append(_issue(_ERROR_DESCRIPTIONS, "invalid_issuer_url"))

    if not any("code" in rt.split(" ") for rt in metadata.response_types_supported):
        errors.append(_issue(_ERROR_DESCRIPTIONS, "code_response_type_not_supported"))
    else:
        successes.append(_issue(_SUCCESS_DESCRIPTIONS, "code_response_type_supported"))

    if "authorization_code" not in metadata.effective_grant_types():
        errors.append(_issue(_ERROR_DESCRIPTIONS, "authorization_code_grant_not_supported"))
    else:
        successes.append(_issue(_SUCCESS_DESCRIPTIONS, "authorization_code_grant_supported"))

    methods = metadata.code_challenge_methods_supported
    if not methods:
        warnings.append(_issue(_WARNING_DESCRIPTIONS, "pkce_not_supported"))
    else:
        successes.append(_issue(_SUCCESS_DESCRIPTIONS, "pkce_supported"))
        if "S256" not in methods:
            warnings.append(_issue(_WARNING_DESCRIPTIONS, "s256_code_challenge_method_not_supported"))
        else:
            successes.append(_issue(_SUCCESS_DESCRIPTIONS, "s256_code_challenge_method_supported"))

    if not metadata.registration_endpoint:
        warnings.append(_issue(_WARNING_DESCRIPTIONS, "dynamic_registration_not_supported"))
    else:
        successes.append(_issue(_SUCCESS_DESCRIPTIONS, "dynamic_registration_supported"))

    return result()


def validate_auth_server(config: AuthServerConfig) -> None:
    """Raise ``AuthServerError`` if the descriptor is unusable; log any warnings."""
    result = validate_server_config(config)
    if not result.is_valid:
        raise AuthServerError(
            "invalid_server_config",
            f"The authorization server (`{config.issuer}`) configuration is invalid: "
            + ", ".join(e.code for e in result.errors),
            cause=result.to_dict(),
        )
    if result.warnings:
        logger.warning(
            "Authorization server issuer=%s configuration has warnings: %s",
            config.issuer,
            ", ".join(w.code for w in result.warnings),
        )
