from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal

from fastapi import Request
from fastapi.responses import JSONResponse

from resource_auth.oauth.bearer import BearerAuthConfig, BearerAuthHandler, ErrorResponse
from resource_auth.oauth.context import IdentityContext
from resource_auth.oauth.errors import ResourceAuthError
from resource_auth.oauth.registry import VerifierRegistry
from resource_auth.oauth.verify_jwt import VerifyAccessToken, VerifyJwtOptions

logger = logging.getLogger(__name__)

VerifyMode = Literal["jwt"]


class AuthRejected(Exception):
    """
    Raised by the security dependencies when a request is rejected.

    Rendered by `auth_rejected_handler` as a top-level OAuth error body
    (`{"error": ..., "error_description": ...}`), not FastAPI's `{"detail": ...}`.
    """

    def __init__(self, response: ErrorResponse):
        super().__init__(response.body.get("error"))
        self.response = response


async def auth_rejected_handler(request: Request, exc: AuthRejected) -> JSONResponse:
    return JSONResponse(
        status_code=exc.response.status_code,
        content=exc.response.body,
        headers=exc.response.headers,
    )


def create_bearer_handler(
    registry: VerifierRegistry,
    mode_or_verify: VerifyMode | VerifyAccessToken = "jwt",
    *,
    resource: str | None = None,
    audience: str | None = None,
    required_scopes: Sequence[str] = (),
    show_error_details: bool = False,
    verify_options: VerifyJwtOptions | None = None,
) -> BearerAuthHandler:
    """
    Build a bearer handler for one protected endpoint.

    - `resource` selects the trust policy (required in multi-resource mode;
      ignored in legacy mode). Resolution happens here, at build time, so a
      misconfigured endpoint fails before serving any request.
    - `mode_or_verify` is "jwt" (verify against the trusted servers' JWKS) or
      a custom `verify(token) -> IdentityContext` callable.
    """

    verifier = registry.resolve_verifier(resource)

    if callable(mode_or_verify):
        verify = mode_or_verify
    elif mode_or_verify == "jwt":
        verify = verifier.create_verify_jwt_function(verify_options)
    else:
        raise ValueError(f"Unsupported verification mode: {mode_or_verify!r}")

    return BearerAuthHandler(
        BearerAuthConfig(
            verify_access_token=verify,
            issuer=verifier.validate_jwt_issuer,
            audience=audience,
            required_scopes=tuple(required_scopes),
            resource_metadata_url=registry.resource_metadata_url(resource),
            show_error_details=show_error_details,
        )
    )


def authenticate_request(request: Request, handler: BearerAuthHandler) -> IdentityContext:
    """
    Run the bearer pipeline for `request` and attach the identity to `request.state.auth`.

    Known auth failures become `AuthRejected`; anything else is logged and re-raised.
    """

    existing = getattr(request.state, "auth", None)
    try:
        auth = handler.authenticate(request.headers.get("authorization"), existing)
    except ResourceAuthError as exc:
        raise AuthRejected(handler.error_response(exc)) from exc
    except Exception:
        logger.exception("Unexpected error during bearer authentication path=%s", request.url.path)
        raise

    request.state.auth = auth
    return auth
