"""
Fetch authorization server metadata from its well-known discovery endpoint.

OAuth servers (RFC 8414) insert the well-known segment *before* the issuer
path; OpenID Connect providers append it *after* the issuer path:

    fetch_server_config("https://auth.example.com/tenant", "oauth")
    # GET https://auth.example.com/.well-known/oauth-authorization-server/tenant

    fetch_server_config("https://auth.example.com/tenant", "oidc")
    # GET https://auth.example.com/tenant/.well-known/openid-configuration
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import requests

from .auth_server import AuthServerType, ResolvedAuthServer
from .errors import AuthServerError, ConfigError
from .metadata import parse_server_metadata

logger = logging.getLogger(__name__)

SERVER_METADATA_PATHS: dict[str, str] = {
    "oauth": "/.well-known/oauth-authorization-server",
    "oidc": "/.well-known/openid-configuration",
}

DEFAULT_TIMEOUT_SECONDS = 10.0

TranspileData = Callable[[dict[str, Any]], dict[str, Any]]


def get_oauth_well_known_url(issuer: str) -> str:
    parts = urlsplit(issuer)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, SERVER_METADATA_PATHS["oauth"] + path, parts.query, ""))


def get_oidc_well_known_url(issuer: str) -> str:
    parts = urlsplit(issuer)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, path + SERVER_METADATA_PATHS["oidc"], parts.query, ""))


def get_well_known_url(issuer: str, type: AuthServerType) -> str:
    if type == "oauth":
        return get_oauth_well_known_url(issuer)
    return get_oidc_well_known_url(issuer)


def fetch_server_config_by_well_known_url(
    well_known_url: str,
    type: AuthServerType,
    transpile_data: TranspileData | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> ResolvedAuthServer:
    """
    GET a discovery document and parse it into a ``ResolvedAuthServer``.

    Raises:
        ConfigError: ``fetch_server_config_error`` when the request fails or
            the response is not 2xx.
        AuthServerError: ``invalid_server_metadata`` when the body is not a
            JSON object or does not match the metadata schema. ``cause``
            lists the failing fields.
    """
    try:
        resp = requests.get(well_known_url, timeout=timeout, headers={"Accept": "application/json"})
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to fetch server metadata url=%s error=%s", well_known_url, exc.__class__.__name__)
        raise ConfigError(
            "fetch_server_config_error",
            f"Failed to fetch server config from {well_known_url}: {exc}",
            cause=exc,
        ) from exc

    try:
        data = resp.json()
    except ValueError as exc:
        raise AuthServerError(
            "invalid_server_metadata",
            f"The server metadata at {well_known_url} is not valid JSON.",
            cause=exc,
        ) from exc

    if isinstance(data, dict) and transpile_data is not None:
        data = transpile_data(data)

    parsed = parse_server_metadata(data)
    if not parsed.ok:
        raise AuthServerError(
            "invalid_server_metadata",
            cause={"url": well_known_url, "errors": [e.to_dict() for e in parsed.errors]},
        )

    logger.debug("Fetched server metadata url=%s issuer=%s", well_known_url, parsed.metadata.issuer)
    return ResolvedAuthServer(type=type, metadata=parsed.metadata)


def fetch_server_config(
    issuer: str,
    type: AuthServerType,
    transpile_data: TranspileData | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> ResolvedAuthServer:
    return fetch_server_config_by_well_known_url(
        get_well_known_url(issuer, type),
        type,
        transpile_data=transpile_data,
        timeout=timeout,
    )
