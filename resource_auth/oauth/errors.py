"""
Typed errors raised by the trust-resolution and token-verification layer.

Every error carries a machine-readable ``code`` and renders to an OAuth 2.0
style error body via ``to_dict()``. The ``cause`` is only included when the
caller explicitly asks for it (``show_error_details``), so configuration
internals are not leaked to API clients by default.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ResourceAuthError(Exception):
    """Base class for all errors raised by this package."""

    default_description = "An error occurred with the resource authentication."

    def __init__(self, code: str, message: str | None = None, *, cause: Any = None) -> None:
        super().__init__(message or self.default_description)
        self.code = code
        self.cause = cause

    @property
    def description(self) -> str:
        return str(self)

    def to_dict(self, show_cause: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.code, "error_description": self.description}
        if show_cause and self.cause is not None:
            data["cause"] = serialize_cause(self.cause)
        return data


class ConfigError(ResourceAuthError):
    """Configuration could not be loaded (e.g. a discovery document could not be fetched)."""


class AuthServerError(ResourceAuthError):
    """The authorization server or its configuration is unusable."""

    default_description = "An error occurred with the authorization server."
    descriptions = {
        "invalid_server_metadata": "The server metadata is invalid or malformed.",
        "invalid_server_config": "The server configuration does not match the expected requirements.",
        "missing_jwks_uri": "The server metadata does not contain a JWKS URI, which is required for JWT verification.",
    }

    def __init__(self, code: str, message: str | None = None, *, cause: Any = None) -> None:
        super().__init__(code, message or self.descriptions.get(code), cause=cause)


class TokenVerificationError(ResourceAuthError):
    """The access token could not be verified."""

    default_description = "An error occurred while verifying the token."
    descriptions = {
        "invalid_token": "The provided token is invalid or malformed.",
        "token_verification_failed": "The token verification failed due to an error in the verification process.",
    }

    def __init__(self, code: str, message: str | None = None, *, cause: Any = None) -> None:
        super().__init__(code, message or self.descriptions.get(code), cause=cause)


class BearerAuthError(ResourceAuthError):
    """The bearer request was rejected (header shape, issuer, audience or scopes)."""

    default_description = "An error occurred with the Bearer auth."
    descriptions = {
        "missing_auth_header": "Missing `Authorization` header. Please provide a valid bearer token.",
        "invalid_auth_header_format": 'Invalid `Authorization` header format. Expected "Bearer <token>".',
        "missing_bearer_token": "Missing bearer token in `Authorization` header. Please provide a valid token.",
        "invalid_issuer": "The token issuer does not match the expected issuer.",
        "invalid_audience": "The token audience does not match the expected audience.",
        "missing_required_scopes": "The token does not contain the necessary scopes for this request.",
        "invalid_token": "The provided token is not valid or has expired.",
    }

    def __init__(
        self,
        code: str,
        *,
        cause: Any = None,
        missing_scopes: list[str] | None = None,
        uri: str | None = None,
    ) -> None:
        super().__init__(code, self.descriptions.get(code), cause=cause)
        self.missing_scopes = missing_scopes
        self.uri = uri

    def to_dict(self, show_cause: bool = False) -> dict[str, Any]:
        data = super().to_dict(show_cause)
        if self.uri:
            data["error_uri"] = self.uri
        if self.missing_scopes:
            data["missing_scopes"] = list(self.missing_scopes)
        return data


def serialize_cause(cause: Any) -> Any:
    """Turn an error cause into something JSON-serializable."""
    if isinstance(cause, ResourceAuthError):
        return cause.to_dict(show_cause=True)
    if isinstance(cause, BaseModel):
        return cause.model_dump(mode="json")
    if isinstance(cause, dict):
        return {str(k): serialize_cause(v) for k, v in cause.items()}
    if isinstance(cause, (list, tuple)):
        return [serialize_cause(v) for v in cause]
    if isinstance(cause, (str, int, float, bool)) or cause is None:
        return cause
    if hasattr(cause, "to_dict"):
        return cause.to_dict()
    return str(cause)
