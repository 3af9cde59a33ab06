"""In-memory instruction override caches.

Each cache holds a nullable key -> text map, the time it was loaded, the scope
it represents (the organization id for the organization cache, None for the
global cache) and an in-flight guard so concurrent callers share one load.

Invalidation bumps a generation counter: a load that started before the
invalidation completes without writing into the cache. This is what keeps a
slow load for the previous organization from landing after an organization
switch.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional


logger = logging.getLogger(__name__)

Clock = Callable[[], float]
OverrideMap = dict[str, Any]


def override_value(mapping: Optional[Mapping[str, Any]], key: str) -> Optional[str]:
    """The override for `key`, or None when absent, not text, or blank.

    Examples:
        >>> override_value({"x": "G"}, "x")
        'G'
        >>> override_value({"x": "   "}, "x") is None
        True
    """
    if not mapping:
        return None
    value = mapping.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def merge_override(
    org_map: Optional[Mapping[str, Any]],
    global_map: Optional[Mapping[str, Any]],
    key: str,
) -> Optional[str]:
    """Effective override: organization first, then global, else None."""
    org_value = override_value(org_map, key)
    if org_value is not None:
        return org_value
    return override_value(global_map, key)


class InstructionsCache:
    """
    One override map plus its freshness bookkeeping.

    Attributes:
        data: Cached map (None = no overrides, or nothing loaded yet)
        loaded_at: Clock reading of the last successful load, None if never loaded
        scope: Organization id the data belongs to (None for the global cache)
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Clock = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.data: Optional[OverrideMap] = None
        self.loaded_at: Optional[float] = None
        self.scope: Optional[str] = None
        self._generation = 0
        self._pending: Optional[asyncio.Future] = None
        self._pending_scope: Optional[str] = None
        self._pending_generation = 0

    def is_loaded(self, scope: Optional[str] = None) -> bool:
        return self.loaded_at is not None and self.scope == scope

    def is_fresh(self, scope: Optional[str] = None) -> bool:
        if not self.is_loaded(scope):
            return False
        if self.ttl_seconds is None:
            return True
        return self.clock() - self.loaded_at <= self.ttl_seconds

    def peek(self, scope: Optional[str] = None) -> Optional[OverrideMap]:
        """Cached map for `scope` without loading; None unless loaded for it."""
        if not self.is_loaded(scope):
            return None
        return self.data

    def put(self, data: Optional[Mapping[str, Any]], scope: Optional[str] = None) -> None:
        """Replace the cached map (after a successful load or write-through)."""
        self._generation += 1
        self.data = dict(data) if data is not None else None
        self.scope = scope
        self.loaded_at = self.clock()

    def invalidate(self) -> None:
        """Forget the cached map; loads already in flight will not populate it."""
        self._generation += 1
        self.data = None
        self.scope = None
        self.loaded_at = None

    async def refresh(
        self,
        loader: Callable[[], Awaitable[Optional[Mapping[str, Any]]]],
        scope: Optional[str] = None,
    ) -> Optional[OverrideMap]:
        """Load the map for `scope`, joining a load already running for it.

        A load started before the last invalidation is not joined: its result
        will be discarded, so a fresh one is started instead.

        Raises whatever the loader raises; the cache is left unchanged then.
        """
        if (
            self._pending is not None
            and self._pending_scope == scope
            and self._pending_generation == self._generation
        ):
            await self._pending
            return self.peek(scope)

        generation = self._generation
        pending = asyncio.ensure_future(loader())
        self._pending, self._pending_scope = pending, scope
        self._pending_generation = generation
        try:
            data = await pending
        finally:
            if self._pending is pending:
                self._pending = None
                self._pending_scope = None

        if generation == self._generation:
            self.put(data, scope)
        else:
            logger.debug(f"Discarding override load for scope {scope!r}: cache invalidated meanwhile")
        return self.peek(scope)

    async def ensure_fresh(
        self,
        loader: Callable[[], Awaitable[Optional[Mapping[str, Any]]]],
        scope: Optional[str] = None,
    ) -> Optional[OverrideMap]:
        if self.is_fresh(scope):
            return self.data
        return await self.refresh(loader, scope)
