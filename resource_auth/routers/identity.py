from __future__ import annotations

from fastapi import APIRouter, Depends

from resource_auth.oauth.context import IdentityContext
from resource_auth.security.dependencies import get_current_identity

router = APIRouter(tags=["identity"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/me")
def me(auth: IdentityContext = Depends(get_current_identity)) -> dict[str, object]:
    """Echo the verified identity (never the raw token)."""
    return auth.to_dict()
