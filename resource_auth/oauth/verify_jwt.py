"""
Verify a JWT access token against a key source and normalize its claims.

The cryptography (signature, ``exp``/``nbf``/``iat``, ``iss``) is delegated to
PyJWT. This module decides which key and which rules PyJWT gets, and turns the
verified payload into an ``IdentityContext``.

Claim mapping:

* **iss** / **sub** - required non-empty strings.
* **client_id** - preferred; **azp** is accepted instead for issuers that
  use that name (e.g. many OpenID Connect providers).
* **scope** - space-delimited string; takes priority over **scopes**, a
  JSON array. Neither present means no scopes.
* **aud** - string or array; kept as-is (arrays become tuples).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWK

from .context import IdentityContext
from .errors import TokenVerificationError

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHMS: tuple[str, ...] = (
    "RS256",
    "RS384",
    "RS512",
    "PS256",
    "PS384",
    "PS512",
    "ES256",
    "ES384",
    "ES512",
    "EdDSA",
)

VerifyAccessToken = Callable[[str], IdentityContext]


class KeySource(Protocol):
    def get_signing_key_from_jwt(self, token: str) -> PyJWK: ...


@dataclass(frozen=True)
class VerifyJwtOptions:
    """Options handed to ``jwt.decode``; ``issuer`` is always pinned by the caller."""

    algorithms: Sequence[str] = DEFAULT_ALGORITHMS
    leeway: float = 0
    audience: str | Sequence[str] | None = None
    required_claims: Sequence[str] = ("exp",)
    options: dict[str, Any] = field(default_factory=dict)


def _get_scopes(value: Any) -> list[str] | None:
    if isinstance(value, list):
        return [s for s in value if isinstance(s, str)]
    if isinstance(value, str):
        return [s for s in value.split(" ") if s.strip()]
    return None


def _non_empty_str(payload: dict[str, Any], claim: str) -> str | None:
    value = payload.get(claim)
    return value if isinstance(value, str) and value else None


def build_identity_context(token: str, payload: dict[str, Any]) -> IdentityContext:
    """Build an ``IdentityContext`` from a verified JWT payload."""
    issuer = _non_empty_str(payload, "iss")
    if issuer is None:
        raise TokenVerificationError(
            "invalid_token", cause="The JWT payload does not contain the `iss` field or it is malformed."
        )

    client_id = _non_empty_str(payload, "client_id") or _non_empty_str(payload, "azp")
    if client_id is None:
        raise TokenVerificationError(
            "invalid_token", cause="The JWT payload does not contain the `client_id` (or `azp`) field or it is malformed."
        )

    subject = _non_empty_str(payload, "sub")
    if subject is None:
        raise TokenVerificationError(
            "invalid_token", cause="The JWT payload does not contain the `sub` field or it is malformed."
        )

    scopes = _get_scopes(payload.get("scope"))
    if scopes is None:
        scopes = _get_scopes(payload.get("scopes")) or []

    aud = payload.get("aud")
    audience: str | tuple[str, ...] | None
    if isinstance(aud, list):
        audience = tuple(str(a) for a in aud)
    elif isinstance(aud, str):
        audience = aud
    else:
        audience = None

    exp = payload.get("exp")
    return IdentityContext(
        token=token,
        issuer=issuer,
        subject=subject,
        client_id=client_id,
        scopes=tuple(scopes),
        audience=audience,
        expires_at=int(exp) if isinstance(exp, (int, float)) else None,
        claims=dict(payload),
    )


def create_verify_jwt(
    key_source: KeySource,
    options: VerifyJwtOptions | None = None,
    issuer: str | None = None,
) -> VerifyAccessToken:
    """
    Return ``verify(token) -> IdentityContext`` bound to ``key_source``.

    Any PyJWT failure (bad signature, expired, unknown key, unreachable JWKS)
    becomes ``TokenVerificationError("invalid_token")`` with the PyJWT error
    as its cause. Anything else propagates untouched.
    """
    opts = options or VerifyJwtOptions()

    def verify(token: str) -> IdentityContext:
        try:
            signing_key = key_source.get_signing_key_from_jwt(token)
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=list(opts.algorithms),
                audience=opts.audience,
                issuer=issuer,
                leeway=opts.leeway,
                options={
                    "verify_signature": True,
                    "verify_aud": opts.audience is not None,
                    "require": list(opts.required_claims),
                    **opts.options,
                },
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Token expired")
            raise TokenVerificationError("invalid_token", "The token has expired.", cause=e) from e
        except jwt.PyJWTError as e:
            logger.info("Token invalid: %s", type(e).__name__)
            raise TokenVerificationError("invalid_token", cause=e) from e

        return build_identity_context(token, payload)

    return verify
