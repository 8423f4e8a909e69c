"""In-memory JWKS cache keyed by provider URI."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import structlog
from cachetools import Cache

from oidc_verify.types import CacheEntry, KeySet, SigningKey

DEFAULT_MAX_AGE_SECONDS = 10 * 60 * 60
DEFAULT_MAX_ENTRIES = 5

logger = structlog.get_logger(__name__)


class _OldestFetchCache(Cache):
    """Bounded mapping that evicts the entry with the oldest fetch time."""

    def popitem(self) -> tuple[str, CacheEntry]:
        try:
            jwks_uri = min(self, key=lambda uri: self[uri].fetched_at)
        except ValueError:
            raise KeyError(f"{type(self).__name__} is empty") from None
        entry = self.pop(jwks_uri)
        logger.info(
            "jwks_cache_evicted",
            jwks_uri=jwks_uri,
            generation=entry.generation,
        )
        return jwks_uri, entry


class KeyCache:
    """Hold the latest key set per provider with age and size bounds."""

    def __init__(
        self,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        now: Callable[[], float] | None = None,
    ) -> None:
        """Create cache with configurable staleness and entry limits."""
        if max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive.")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1.")
        self._max_age_seconds = max_age_seconds
        self._entries: _OldestFetchCache = _OldestFetchCache(maxsize=max_entries)
        self._generations: dict[str, int] = {}
        self._now = now or time.monotonic
        self._lock = threading.Lock()

    @property
    def max_age_seconds(self) -> float:
        """Age at which a cached key set counts as stale."""
        return self._max_age_seconds

    @property
    def max_entries(self) -> int:
        """Number of providers held before the oldest fetch is evicted."""
        return int(self._entries.maxsize)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def lookup(self, jwks_uri: str, kid: str, *, allow_stale: bool = False) -> SigningKey | None:
        """Return the cached key for kid, or None on miss or staleness."""
        with self._lock:
            entry = self._entries.get(jwks_uri)
            if entry is None:
                return None
            if not allow_stale and self._is_stale(entry):
                return None
            return entry.key_set.find(kid)

    def entry(self, jwks_uri: str) -> CacheEntry | None:
        """Return the current cache entry for a provider, stale or not."""
        with self._lock:
            return self._entries.get(jwks_uri)

    def next_generation(self, jwks_uri: str) -> int:
        """Reserve the generation a fetch about to start will commit as."""
        with self._lock:
            generation = self._generations.get(jwks_uri, 0) + 1
            self._generations[jwks_uri] = generation
            return generation

    def store(self, jwks_uri: str, key_set: KeySet, *, generation: int | None = None) -> bool:
        """Install a key set, replacing any previous entry for the provider.

        A store carrying a generation older than the latest reserved one is a
        late result from a superseded fetch and is discarded.
        """
        if key_set.jwks_uri != jwks_uri:
            raise ValueError("Key set belongs to a different provider.")
        with self._lock:
            latest = self._generations.get(jwks_uri, 0)
            if generation is None:
                generation = latest + 1
                self._generations[jwks_uri] = generation
            elif generation < latest:
                logger.info(
                    "jwks_cache_store_superseded",
                    jwks_uri=jwks_uri,
                    generation=generation,
                    latest_generation=latest,
                )
                return False
            self._entries[jwks_uri] = CacheEntry(
                key_set=key_set,
                fetched_at=self._now(),
                generation=generation,
            )
        logger.debug(
            "jwks_cache_stored",
            jwks_uri=jwks_uri,
            generation=generation,
            key_count=len(key_set.keys),
        )
        return True

    def invalidate(self, jwks_uri: str) -> None:
        """Drop the provider's entry so the next lookup misses."""
        with self._lock:
            removed = self._entries.pop(jwks_uri, None)
        if removed is not None:
            logger.info("jwks_cache_invalidated", jwks_uri=jwks_uri)

    def _is_stale(self, entry: CacheEntry) -> bool:
        return self._now() - entry.fetched_at >= self._max_age_seconds
