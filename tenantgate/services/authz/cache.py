from __future__ import annotations

from dataclasses import dataclass
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Hashable

from tenantgate.core.config import get_settings


logger = logging.getLogger(__name__)

KIND_ROLE = "role"
KIND_PAGES = "pages"
KIND_AVAILABILITY = "availability"

CacheKey = tuple[str, str, str]


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    loaded_at: float
    expires_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    expirations: int = 0
    invalidations: int = 0


class AuthzCache:
    """Invalidate-on-write cache for read-mostly authorization sources.

    Keys are ``(kind, company_id, discriminator)`` tuples: the role name for
    role and page-matrix entries, the page key for availability entries.
    Every entry carries its load time, so the staleness window after an admin
    edit is bounded by ``ttl_s`` and observable through :meth:`age_of`.
    Writers call :meth:`invalidate_company` after committing.

    User permission overrides are never stored here.
    """

    def __init__(self, ttl_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self.stats = CacheStats()

    @property
    def enabled(self) -> bool:
        return self.ttl_s > 0

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, key: CacheKey) -> tuple[bool, Any]:
        # Return (found, value) so cached None stays distinguishable from a miss.
        if not self.enabled:
            return False, None
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return False, None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            self.stats.expirations += 1
            self.stats.misses += 1
            return False, None
        self.stats.hits += 1
        return True, entry.value

    async def store(self, key: CacheKey, value: Any) -> None:
        if not self.enabled:
            return
        now = self._clock()
        async with self._lock:
            self._entries[key] = CacheEntry(value=value, loaded_at=now, expires_at=now + self.ttl_s)

    async def get_or_load(self, key: CacheKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        found, value = self.lookup(key)
        if found:
            return value
        value = await loader()
        await self.store(key, value)
        return value

    def age_of(self, key: CacheKey) -> float | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.loaded_at

    def invalidate(self, key: CacheKey) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            self.stats.invalidations += 1
        return removed

    def invalidate_company(self, company_id: str, *, kind: str | None = None) -> int:
        # Drop every entry for the company (optionally one kind) after an admin write.
        doomed = [
            key
            for key in self._entries
            if key[1] == company_id and (kind is None or key[0] == kind)
        ]
        for key in doomed:
            self._entries.pop(key, None)
        self.stats.invalidations += len(doomed)
        if doomed:
            logger.debug(
                "authz_cache_invalidated company_id=%s kind=%s entries=%s",
                company_id,
                kind or "*",
                len(doomed),
            )
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()
        self.stats = CacheStats()


_cache: AuthzCache | None = None


def get_authz_cache() -> AuthzCache:
    # Lazily create the process-wide cache so settings overrides apply in tests.
    global _cache
    if _cache is None:
        _cache = AuthzCache(ttl_s=get_settings().authz_cache_ttl_s)
    return _cache


def reset_authz_cache() -> None:
    # Rebuild the cache from current settings for deterministic tests.
    global _cache
    _cache = None
