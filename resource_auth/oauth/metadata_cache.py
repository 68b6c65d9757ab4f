"""
Authorization server metadata cache with request deduplication.

Resolved descriptors are answered directly. Discovery descriptors are fetched
on first use and cached for the lifetime of the process; metadata is assumed
static. Concurrent callers asking for the same unresolved issuer share a single
in-flight fetch (a "singleflight"):

    first caller    -> registers a Future, fetches outside the lock, settles it
    other callers   -> wait on that Future
    after settling  -> the in-flight entry is removed (success *and* failure),
                       so a failed fetch is retried by the next caller

The lock only guards the two dicts. It is never held across network I/O.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future

from .auth_server import AuthServerConfig, AuthServerType, ResolvedAuthServer, validate_auth_server
from .discovery import fetch_server_config
from .errors import AuthServerError
from .metadata import AuthorizationServerMetadata

logger = logging.getLogger(__name__)

MetadataFetcher = Callable[[str, AuthServerType], ResolvedAuthServer]


class AuthServerMetadataCache:
    def __init__(self, fetcher: MetadataFetcher | None = None) -> None:
        self._fetcher = fetcher or fetch_server_config
        self._lock = threading.Lock()
        self._values: dict[str, AuthorizationServerMetadata] = {}
        self._in_flight: dict[str, Future[AuthorizationServerMetadata]] = {}

    def resolve(self, config: AuthServerConfig, timeout: float | None = None) -> AuthorizationServerMetadata:
        """
        Return the metadata for ``config``, fetching it at most once per issuer.

        ``timeout`` bounds how long *this* caller waits on a fetch started by
        another caller. Giving up does not cancel the shared fetch.

        Raises whatever the fetch raised (``ConfigError`` for transport
        failures, ``AuthServerError`` for invalid metadata) to every waiter.
        """
        if isinstance(config, ResolvedAuthServer):
            return config.metadata

        issuer = config.issuer
        with self._lock:
            cached = self._values.get(issuer)
            if cached is not None:
                return cached
            future = self._in_flight.get(issuer)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[issuer] = future

        if owner:
            self._fetch(config, future)
        return future.result(timeout=timeout)

    def get_cached(self, issuer: str) -> AuthorizationServerMetadata | None:
        with self._lock:
            return self._values.get(issuer)

    def _fetch(self, config: AuthServerConfig, future: Future[AuthorizationServerMetadata]) -> None:
        issuer = config.issuer
        try:
            resolved = self._fetcher(issuer, config.type)
            if resolved.issuer != issuer:
                raise AuthServerError(
                    "invalid_server_metadata",
                    f"The fetched metadata issuer `{resolved.issuer}` does not match the configured issuer `{issuer}`.",
                )
            validate_auth_server(resolved)
        except Exception as exc:
            future.set_exception(exc)
        else:
            with self._lock:
                self._values[issuer] = resolved.metadata
            logger.debug("Cached server metadata issuer=%s", issuer)
            future.set_result(resolved.metadata)
        finally:
            with self._lock:
                self._in_flight.pop(issuer, None)
            # Interrupted before settling; release any waiters.
            if not future.done():
                future.cancel()
