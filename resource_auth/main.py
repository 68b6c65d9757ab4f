from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from functools import partial

from fastapi import Depends, FastAPI

from resource_auth.logging_config import configure_app_logging
from resource_auth.oauth.discovery import fetch_server_config
from resource_auth.oauth.jwks_cache import KeySetCache
from resource_auth.oauth.metadata_cache import AuthServerMetadataCache
from resource_auth.oauth.verify_jwt import VerifyJwtOptions
from resource_auth.routers import identity, well_known
from resource_auth.security.auth import AuthRejected, auth_rejected_handler
from resource_auth.security.config import load_security_config
from resource_auth.security.dependencies import enforce_security
from resource_auth.settings import get_settings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        config_path = settings.resolved_config_path()
        app.state.security_config = load_security_config(config_path)
        logger.info("Loaded security config: %s", config_path)

        # Fails fast on invalid trust configuration: the app does not start.
        app.state.verifier_registry = app.state.security_config.build_registry(
            metadata_cache=AuthServerMetadataCache(
                fetcher=partial(fetch_server_config, timeout=settings.http_timeout_seconds),
            ),
            key_set_cache=KeySetCache(
                ttl_seconds=settings.jwks_cache_ttl_seconds,
                timeout=settings.http_timeout_seconds,
            ),
        )
        app.state.verify_options = VerifyJwtOptions(leeway=settings.clock_skew_seconds)
        app.state.show_error_details = settings.show_error_details
        app.state.bearer_handlers = {}
        logger.info("Verifier registry built mode=%s", app.state.verifier_registry.mode.value)

        yield
        # Shutdown (caches are in-memory only)

    # Global dependency: applies security with zero changes to route handlers.
    app = FastAPI(dependencies=[Depends(enforce_security)], lifespan=lifespan)
    app.add_exception_handler(AuthRejected, auth_rejected_handler)

    app.include_router(well_known.router)
    app.include_router(identity.router)

    return app


app = create_app()
