"""Promoto — Entity Read Cache.

Short-TTL read-through cache for rarely-changing listings (restaurants,
categories, ad sets, posts). Entries are grouped by entity type and every
write to a type must call invalidate() for it. Capacity checks in the ad set
resolver never go through this cache.
"""

import threading
import time
from typing import Any, Callable, Dict, Hashable, Tuple

from promoto.config import settings
from promoto.core.logging import get_logger

logger = get_logger("core.cache")

RESTAURANTS = "restaurants"
CATEGORIES = "categories"
AD_SETS = "ad_sets"
POSTS = "posts"
OPPORTUNITIES = "opportunities"


class EntityCache:
    """TTL cache keyed by (entity type, key)."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Dict[Hashable, Tuple[float, Any]]] = {}
        self._lock = threading.Lock()

    def get_or_load(self, entity_type: str, key: Hashable, loader: Callable[[], Any]) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(entity_type, {}).get(key)
            if entry and entry[0] > now:
                return entry[1]

        value = loader()
        with self._lock:
            self._entries.setdefault(entity_type, {})[key] = (now + self.ttl_seconds, value)
        return value

    def invalidate(self, *entity_types: str) -> None:
        with self._lock:
            for entity_type in entity_types:
                if self._entries.pop(entity_type, None) is not None:
                    logger.debug(f"Cache invalidated: {entity_type}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


cache = EntityCache(ttl_seconds=settings.cache_ttl_seconds)
