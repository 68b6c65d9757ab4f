from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - Uvicorn already configures handlers; this function mainly sets levels for our package.
    - Set `RESOURCE_AUTH_LOG_LEVEL=DEBUG` to see cache fills and JWKS refreshes.
    - Tokens are never logged at any level.
    """

    normalized = level.upper()
    logging.getLogger("resource_auth").setLevel(normalized)
    # Ensure child loggers under resource_auth.* inherit this level.
    logging.getLogger("resource_auth").propagate = True
