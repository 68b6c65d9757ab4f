from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from resource_auth.oauth.bearer import SERVER_ERROR_DESCRIPTION
from resource_auth.oauth.discovery import SERVER_METADATA_PATHS
from resource_auth.oauth.errors import ResourceAuthError
from resource_auth.oauth.registry import VerifierMode, VerifierRegistry
from resource_auth.oauth.resource_metadata import RESOURCE_METADATA_BASE_PATH
from resource_auth.security.dependencies import get_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["well-known"])

# Metadata is intended for public consumption by any client.
_CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


@router.get(SERVER_METADATA_PATHS["oauth"])
def authorization_server_metadata(registry: VerifierRegistry = Depends(get_registry)) -> JSONResponse:
    """Legacy mode: proxy the single trusted authorization server's metadata."""
    if registry.mode is not VerifierMode.LEGACY:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    try:
        metadata = registry.server_metadata()
    except ResourceAuthError as exc:
        logger.error("Failed to resolve authorization server metadata code=%s: %s", exc.code, exc)
        return JSONResponse(
            {"error": "server_error", "error_description": SERVER_ERROR_DESCRIPTION},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    return JSONResponse(metadata.to_wire(), headers=_CORS_HEADERS)


@router.get(RESOURCE_METADATA_BASE_PATH)
def root_resource_metadata(registry: VerifierRegistry = Depends(get_registry)) -> JSONResponse:
    return _resource_metadata_response(registry, RESOURCE_METADATA_BASE_PATH)


@router.get(RESOURCE_METADATA_BASE_PATH + "/{resource_path:path}")
def protected_resource_metadata(resource_path: str, registry: VerifierRegistry = Depends(get_registry)) -> JSONResponse:
    """RFC 9728 metadata for the resource whose path matches."""
    return _resource_metadata_response(registry, f"{RESOURCE_METADATA_BASE_PATH}/{resource_path}")


def _resource_metadata_response(registry: VerifierRegistry, path: str) -> JSONResponse:
    if registry.mode is not VerifierMode.RESOURCES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    metadata = registry.resource_metadata_by_path().get(path)
    if metadata is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return JSONResponse(metadata.to_wire(), headers=_CORS_HEADERS)
