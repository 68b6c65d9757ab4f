from __future__ import annotations

from collections.abc import Callable, Sequence

from fastapi import Depends, HTTPException, Request, status

from resource_auth.oauth.context import IdentityContext
from resource_auth.oauth.registry import VerifierRegistry
from resource_auth.oauth.verify_jwt import VerifyAccessToken, VerifyJwtOptions
from resource_auth.security.auth import VerifyMode, authenticate_request, create_bearer_handler
from resource_auth.security.config import EffectiveRule, SecurityConfig

WELL_KNOWN_PREFIX = "/.well-known/"


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_registry(request: Request) -> VerifierRegistry:
    registry = getattr(request.app.state, "verifier_registry", None)
    if registry is None:
        raise RuntimeError("Verifier registry not built. Did app startup run?")
    return registry


def get_current_identity(request: Request) -> IdentityContext:
    auth = getattr(request.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return auth


def bearer_auth(
    registry: VerifierRegistry,
    mode_or_verify: VerifyMode | VerifyAccessToken = "jwt",
    *,
    resource: str | None = None,
    audience: str | None = None,
    required_scopes: Sequence[str] = (),
    show_error_details: bool = False,
    verify_options: VerifyJwtOptions | None = None,
) -> Callable[[Request], IdentityContext]:
    """
    Per-endpoint dependency (explicit alternative to `enforce_security`).

        notes = bearer_auth(registry, resource="https://api.example.com/notes", required_scopes=["read:notes"])

        @router.get("/notes")
        def list_notes(auth: IdentityContext = Depends(notes)): ...
    """

    handler = create_bearer_handler(
        registry,
        mode_or_verify,
        resource=resource,
        audience=audience,
        required_scopes=required_scopes,
        show_error_details=show_error_details,
        verify_options=verify_options,
    )

    def dependency(request: Request) -> IdentityContext:
        return authenticate_request(request, handler)

    return dependency


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    registry: VerifierRegistry = Depends(get_registry),
) -> None:
    """
    Global security dependency (PRIMARY, configuration-driven).

    Why dependency (not middleware)?
    - Runs after routing, so we can also *optionally* read decorator metadata.
    - Still requires **zero changes** to existing route handlers when added globally.
    """

    path = request.url.path
    if path.startswith(WELL_KNOWN_PREFIX):
        return

    rule = config.match(path, request.method)

    # Optional decorator metadata (alternative example).
    endpoint = request.scope.get("endpoint")
    decorator_scopes = list(getattr(endpoint, "__security_required_scopes__", [])) if endpoint else []
    decorator_audience = getattr(endpoint, "__security_required_audience__", None) if endpoint else None

    auth_required = rule.auth_required or bool(decorator_scopes) or bool(decorator_audience)
    if not auth_required:
        return

    effective = EffectiveRule(
        auth_required=True,
        resource=rule.resource,
        audience=decorator_audience or rule.audience,
        required_scopes=tuple(dict.fromkeys([*rule.required_scopes, *decorator_scopes])),
    )
    handler = _handler_for_rule(request, registry, config, effective)
    authenticate_request(request, handler)


def _handler_for_rule(request: Request, registry: VerifierRegistry, config: SecurityConfig, rule: EffectiveRule):
    state = request.app.state
    handlers = getattr(state, "bearer_handlers", None)
    if handlers is None:
        handlers = state.bearer_handlers = {}

    handler = handlers.get(rule)
    if handler is None:
        show = config.show_error_details
        if show is None:
            show = bool(getattr(state, "show_error_details", False))
        handler = create_bearer_handler(
            registry,
            resource=rule.resource,
            audience=rule.audience,
            required_scopes=rule.required_scopes,
            show_error_details=show,
            verify_options=getattr(state, "verify_options", None),
        )
        # Concurrent first requests may build twice; the handlers are equivalent.
        handlers.setdefault(rule, handler)
    return handler
