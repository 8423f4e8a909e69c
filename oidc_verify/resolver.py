"""Signing-key resolution over the cache, rate limiter and JWKS client."""

from __future__ import annotations

import asyncio
from typing import Protocol

import structlog

from oidc_verify.cache import KeyCache
from oidc_verify.exceptions import RateLimitedError, UnknownKeyIDError
from oidc_verify.rate_limit import SlidingWindowRateLimiter
from oidc_verify.types import KeySet, SigningKey

logger = structlog.get_logger(__name__)


class KeySetFetcher(Protocol):
    """Protocol for the network fetch used on cache misses."""

    async def fetch_key_set(self, jwks_uri: str) -> KeySet:
        """Fetch and parse the provider's current key set."""


class KeyResolver:
    """Resolve a kid to a signing key, fetching at most once per miss.

    Concurrent misses for the same provider join a single in-flight fetch
    and all receive its result, success or failure. Fetches are gated by the
    rate limiter; when a refresh is denied, a stale cached key for the kid is
    served if one exists. A resolver is bound to the event loop it runs on.
    """

    def __init__(
        self,
        fetcher: KeySetFetcher,
        cache: KeyCache | None = None,
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._cache = cache if cache is not None else KeyCache()
        self._rate_limiter = (
            rate_limiter if rate_limiter is not None else SlidingWindowRateLimiter()
        )
        self._pending: dict[str, asyncio.Task[KeySet]] = {}

    @property
    def cache(self) -> KeyCache:
        """Cache backing this resolver."""
        return self._cache

    @property
    def rate_limiter(self) -> SlidingWindowRateLimiter:
        """Limiter gating fetches for this resolver."""
        return self._rate_limiter

    async def resolve(self, jwks_uri: str, kid: str) -> SigningKey:
        """Return the provider's key for kid, refreshing the cache when needed."""
        key = self._cache.lookup(jwks_uri, kid)
        if key is not None:
            logger.debug("jwks_cache_hit", jwks_uri=jwks_uri, kid=kid)
            return key

        task = self._pending.get(jwks_uri)
        if task is None:
            if not self._rate_limiter.try_acquire(jwks_uri):
                stale_key = self._cache.lookup(jwks_uri, kid, allow_stale=True)
                if stale_key is not None:
                    logger.warning("jwks_stale_key_served", jwks_uri=jwks_uri, kid=kid)
                    return stale_key
                logger.warning("jwks_refresh_rate_limited", jwks_uri=jwks_uri, kid=kid)
                raise RateLimitedError(
                    f"JWKS refresh limit of {self._rate_limiter.limit} per minute "
                    "reached and no cached key is available."
                )
            task = self._start_refresh(jwks_uri)
        else:
            logger.debug("jwks_fetch_joined", jwks_uri=jwks_uri, kid=kid)

        key_set = await asyncio.shield(task)
        key = key_set.find(kid)
        if key is None:
            self._cache.invalidate(jwks_uri)
            logger.warning(
                "jwks_unknown_kid",
                jwks_uri=jwks_uri,
                kid=kid,
                known_kids=list(key_set.kids),
            )
            raise UnknownKeyIDError(f"Signing key {kid!r} not found in provider JWKS.")
        return key

    def _start_refresh(self, jwks_uri: str) -> asyncio.Task[KeySet]:
        """Start one shared fetch for the provider and track it until done."""
        generation = self._cache.next_generation(jwks_uri)
        task = asyncio.ensure_future(self._fetch_and_store(jwks_uri, generation))

        def _forget(done: asyncio.Task[KeySet]) -> None:
            if self._pending.get(jwks_uri) is done:
                del self._pending[jwks_uri]

        self._pending[jwks_uri] = task
        task.add_done_callback(_forget)
        return task

    async def _fetch_and_store(self, jwks_uri: str, generation: int) -> KeySet:
        """Fetch the key set and commit it if no newer fetch superseded it."""
        key_set = await self._fetcher.fetch_key_set(jwks_uri)
        self._cache.store(jwks_uri, key_set, generation=generation)
        return key_set
