"""
Hash-keyed response cache with a mixed-content strategy for lists.

Cache key = SHA-256(action + canonical JSON(payload) + cache-format version).
Bumping the version string is the only invalidation: old rows stay in the
table but can no longer be addressed.

Discovery lists are keyed by category (action + selection criterion) rather
than by full payload. With probability ``full_hit_probability`` a cached list
is served unchanged; otherwise one cached item is carried forward and mixed
with freshly generated ones, and the result replaces the category's list.
"""

import asyncio
import hashlib
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..storage.models import CacheEntry
from ..storage.repository import GatewayRepository

logger = logging.getLogger(__name__)

ItemGenerator = Callable[[int], Awaitable[List[Dict[str, Any]]]]


def canonical_json(payload: Any) -> str:
    """Serialize ``payload`` with sorted keys and no insignificant whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_key(action: str, payload: Any, version: str) -> str:
    """Deterministic cache key for an action, its payload and a cache version.

    Args:
        action: Action name
        payload: JSON-like request payload
        version: Cache-format version string

    Returns:
        Hex SHA-256 digest
    """
    raw = action + canonical_json(payload) + version
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def item_identity(item: Any, identity_field: str) -> Optional[str]:
    if isinstance(item, dict):
        value = item.get(identity_field)
        if isinstance(value, str):
            return value.strip().casefold()
    return None


@dataclass(frozen=True)
class MixResult:
    """Outcome of a discovery lookup.

    ``generated`` is True when the generator was called; ``carried`` is the
    recycled cached item that made it into ``items``, if any.
    """
    items: List[Dict[str, Any]]
    full_hit: bool
    generated: bool
    carried: Optional[Dict[str, Any]] = None


class ContentCache:
    """Mediates cache hit, miss and store against the backing store.

    Args:
        repository: Backing store for cache rows
        version: Cache-format version mixed into every key
        full_hit_probability: Chance of serving a cached list unchanged
        fresh_count: Items requested from the generator when one is carried
        rng: Random source for the full-hit roll and the carried item
    """

    def __init__(
        self,
        repository: GatewayRepository,
        version: str,
        full_hit_probability: float = 0.3,
        fresh_count: int = 2,
        rng: Optional[random.Random] = None,
    ):
        self.repository = repository
        self.version = version
        self.full_hit_probability = full_hit_probability
        self.fresh_count = fresh_count
        self._rng = rng or random.Random()

    def key_for(self, action: str, payload: Any, version: Optional[str] = None) -> str:
        return compute_key(action, payload, self.version if version is None else version)

    async def lookup(
        self, action: str, payload: Any, version: Optional[str] = None
    ) -> Optional[CacheEntry]:
        """Return the newest entry for the exact key, or None on a miss."""
        key = self.key_for(action, payload, version)
        entry = await asyncio.to_thread(self.repository.get_cache_entry, key)
        logger.debug("cache %s: %s %s", "HIT" if entry else "MISS", action, key[:12])
        return entry

    async def store(
        self, action: str, payload: Any, content: Any, version: Optional[str] = None
    ) -> CacheEntry:
        """Insert ``content`` under the exact key."""
        key = self.key_for(action, payload, version)
        entry = await asyncio.to_thread(self.repository.insert_cache_entry, key, content, action)
        logger.debug("cache SET: %s %s", action, key[:12])
        return entry

    async def lookup_or_mix(
        self,
        action: str,
        criterion: Dict[str, Any],
        generator: ItemGenerator,
        size: int,
        identity_field: str = "name",
        version: Optional[str] = None,
    ) -> MixResult:
        """Serve a discovery list using the mixed-content strategy.

        Args:
            action: Discovery action name
            criterion: The list's selection criterion only (category key)
            generator: Coroutine function producing ``n`` fresh items
            size: Target list length when nothing can be carried forward
            identity_field: Item field that defines duplicates
            version: Cache version override

        Returns:
            MixResult with the served list. The list is shorter than
            ``fresh_count + 1`` when the carried item collides with a fresh one.
        """
        entry = await self.lookup(action, criterion, version)
        cached: List[Dict[str, Any]] = []
        if entry is not None and isinstance(entry.content, list):
            cached = entry.content

        if cached and self._rng.random() < self.full_hit_probability:
            logger.info("cache: full hit for %s (%d items)", action, len(cached))
            return MixResult(items=list(cached), full_hit=True, generated=False)

        carried = self._rng.choice(cached) if cached else None
        requested = self.fresh_count if carried is not None else size
        fresh = await generator(requested)

        items = list(fresh)
        kept_carried = None
        if carried is not None:
            carried_id = item_identity(carried, identity_field)
            fresh_ids = {item_identity(item, identity_field) for item in fresh}
            if carried_id is not None and carried_id in fresh_ids:
                logger.info("cache: carried item collides with fresh %s; dropping it", action)
            else:
                kept_carried = carried
                items = [carried] + items

        logger.info(
            "cache: mixed %s -> %d items (%d carried, %d fresh)",
            action,
            len(items),
            1 if kept_carried is not None else 0,
            len(fresh),
        )
        try:
            await self.store(action, criterion, items, version)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache: storing mixed list for %s failed: %s", action, exc)

        return MixResult(items=items, full_hit=False, generated=True, carried=kept_carried)
