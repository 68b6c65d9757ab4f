"""
Bearer-auth decision pipeline.

For every request:

    Authorization header -> token -> verify (issuer trust, keys, signature)
        -> issuer re-check -> audience -> scopes -> IdentityContext

Each rejection is a typed ``ResourceAuthError``; ``error_response()`` maps it
to the HTTP status and OAuth error body:

    BearerAuthError / TokenVerificationError   401 (403 for missing scopes)
    AuthServerError / ConfigError              500 ``server_error``

Anything else is unexpected: it is logged and re-raised, never turned into an
auth decision.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from .context import IdentityContext
from .errors import AuthServerError, BearerAuthError, ConfigError, ResourceAuthError, TokenVerificationError
from .verify_jwt import VerifyAccessToken
from .www_authenticate import BearerWWWAuthenticateHeader

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"
SERVER_ERROR_DESCRIPTION = "An error occurred with the authorization server."

IssuerCheck = Callable[[str], None]

_CHALLENGE_ERRORS: dict[str, str | None] = {
    "missing_auth_header": None,
    "invalid_auth_header_format": "invalid_request",
    "missing_bearer_token": "invalid_request",
    "missing_required_scopes": "insufficient_scope",
}


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header value.

    The scheme is case-insensitive and must be followed by exactly one token
    segment.
    """
    if not authorization:
        raise BearerAuthError("missing_auth_header")

    scheme, _, rest = authorization.partition(" ")
    if scheme.lower() != BEARER_SCHEME or " " in rest:
        raise BearerAuthError("invalid_auth_header_format")

    if not rest:
        raise BearerAuthError("missing_bearer_token")
    return rest


@dataclass(frozen=True)
class BearerAuthConfig:
    verify_access_token: VerifyAccessToken
    issuer: str | IssuerCheck
    """Expected issuer, or a callable raising ``BearerAuthError`` for untrusted issuers."""

    audience: str | None = None
    required_scopes: Sequence[str] = ()
    resource_metadata_url: str | None = None
    show_error_details: bool = False


@dataclass(frozen=True)
class ErrorResponse:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


class BearerAuthHandler:
    def __init__(self, config: BearerAuthConfig) -> None:
        self.config = config

    def authenticate(self, authorization: str | None, existing: IdentityContext | None = None) -> IdentityContext:
        config = self.config
        token = get_bearer_token(authorization)
        auth = config.verify_access_token(token)

        self._check_issuer(auth.issuer)

        if config.audience and not auth.has_audience(config.audience):
            raise BearerAuthError(
                "invalid_audience",
                cause={"expected": config.audience, "actual": _audience_repr(auth.audience)},
            )

        missing_scopes = [s for s in config.required_scopes if s not in auth.scopes]
        if missing_scopes:
            raise BearerAuthError("missing_required_scopes", missing_scopes=missing_scopes)

        if existing is not None:
            logger.warning(
                "Request already contains auth info and will be overwritten. Please double-check if this is intended."
            )
        return auth

    def _check_issuer(self, issuer: str) -> None:
        expected = self.config.issuer
        if callable(expected):
            expected(issuer)
        elif issuer != expected:
            raise BearerAuthError("invalid_issuer", cause={"expected": expected, "actual": issuer})

    def error_response(self, error: ResourceAuthError) -> ErrorResponse:
        show = self.config.show_error_details

        if isinstance(error, (AuthServerError, ConfigError)):
            logger.error("Authorization server or configuration error code=%s: %s", error.code, error)
            body: dict[str, Any] = {"error": "server_error", "error_description": SERVER_ERROR_DESCRIPTION}
            if show:
                body["cause"] = error.to_dict(show_cause=False)
            return ErrorResponse(status_code=500, body=body)

        if isinstance(error, (BearerAuthError, TokenVerificationError)):
            status_code = 403 if error.code == "missing_required_scopes" else 401
            logger.info("Bearer auth rejected code=%s status=%d", error.code, status_code)
            return ErrorResponse(
                status_code=status_code,
                body=error.to_dict(show_cause=show),
                headers=self._challenge_headers(error),
            )

        logger.error("Unrecognized auth error code=%s", error.code)
        return ErrorResponse(status_code=500, body={"error": "server_error", "error_description": SERVER_ERROR_DESCRIPTION})

    def _challenge_headers(self, error: ResourceAuthError) -> dict[str, str]:
        # Requests without credentials get a bare challenge (RFC 6750 section 3.1).
        code = _CHALLENGE_ERRORS.get(error.code, "invalid_token")
        header = (
            BearerWWWAuthenticateHeader()
            .set_parameter_if_value_exists("error", code)
            .set_parameter_if_value_exists("error_description", error.description if code else None)
            .set_parameter_if_value_exists("scope", " ".join(self.config.required_scopes))
            .set_parameter_if_value_exists("resource_metadata", self.config.resource_metadata_url)
        )
        value = str(header) or "Bearer"
        return {header.header_name: value}


def handle_bearer_auth(config: BearerAuthConfig) -> BearerAuthHandler:
    return BearerAuthHandler(config)


def _audience_repr(audience: str | tuple[str, ...] | None) -> str | list[str] | None:
    return list(audience) if isinstance(audience, tuple) else audience
