from __future__ import annotations

from collections.abc import Callable


def require_scopes(scopes: list[str]) -> Callable:
    """
    Decorator-style API (alternative to route rules in the YAML config).

    Implementation detail:
    - This decorator does NOT perform auth itself.
    - It attaches metadata that the global security dependency reads
      *after* routing (during dependency resolution) and merges with the
      matching route rule.
    """

    def decorator(fn: Callable) -> Callable:
        existing = list(getattr(fn, "__security_required_scopes__", []))
        setattr(fn, "__security_required_scopes__", existing + [s for s in scopes if s not in existing])
        return fn

    return decorator


def require_audience(audience: str) -> Callable:
    """
    Decorator-style API (alternative example).

    Attaches the audience the token's `aud` claim must contain for this endpoint.
    """

    def decorator(fn: Callable) -> Callable:
        setattr(fn, "__security_required_audience__", audience)
        return fn

    return decorator
