"""Process-local TTL cache of derived permission lists, keyed by user id."""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger("tukin.rbac")

DEFAULT_TTL_SECONDS = 300


class PermissionCache:
    """Read-through cache: ``user_id -> (permissions, inserted_at)``.

    TTL is measured from insertion and checked lazily on access. There is no
    locking: two concurrent misses for the same user both recompute and the
    last write wins, which is harmless since resolution is idempotent.

    A resolution that started before an invalidation must not repopulate the
    entry afterwards. Callers take ``generation(user_id)`` before resolving and
    pass it to ``put``, which drops the write if the user (or the whole cache)
    was invalidated in between.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[List[str], float]] = {}
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "invalidations": 0, "stale_puts": 0}
        self._epoch = 0
        self._generations: Dict[str, int] = {}

    def get(self, user_id: str) -> Optional[List[str]]:
        """Return the cached permissions, or None on a miss or expired entry."""
        entry = self._entries.get(user_id)
        if entry is None:
            self._stats["misses"] += 1
            return None

        permissions, inserted_at = entry
        if self._clock() - inserted_at >= self.ttl_seconds:
            # Only drop the entry we looked at; a concurrent put may have replaced it
            if self._entries.get(user_id) is entry:
                del self._entries[user_id]
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        return list(permissions)

    def generation(self, user_id: str) -> Tuple[int, int]:
        """Token that changes whenever ``user_id`` or the whole cache is invalidated."""
        return self._epoch, self._generations.get(user_id, 0)

    def put(
        self,
        user_id: str,
        permissions: List[str],
        generation: Optional[Tuple[int, int]] = None,
    ) -> bool:
        """Store ``permissions`` unless ``generation`` is no longer current."""
        if generation is not None and generation != self.generation(user_id):
            self._stats["stale_puts"] += 1
            logger.debug("Discarded stale permissions for user %s", user_id)
            return False
        self._entries[user_id] = (list(permissions), self._clock())
        self._stats["sets"] += 1
        return True

    def invalidate(self, user_id: str) -> None:
        """Drop a single user's entry so the next check re-resolves."""
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        if self._entries.pop(user_id, None) is not None:
            logger.debug("Permission cache invalidated for user %s", user_id)
        self._stats["invalidations"] += 1

    def invalidate_all(self) -> None:
        """Drop every entry (role schema changes)."""
        count = len(self._entries)
        self._entries.clear()
        self._generations.clear()
        self._epoch += 1
        self._stats["invalidations"] += 1
        logger.info("Permission cache cleared (%d entries)", count)

    def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, object]:
        lookups = self._stats["hits"] + self._stats["misses"]
        return {
            **self._stats,
            "size": len(self._entries),
            "ttl_seconds": self.ttl_seconds,
            "hit_rate": round(self._stats["hits"] / lookups, 4) if lookups else 0.0,
        }
