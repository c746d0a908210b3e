"""
AI cache backed by Redis.

One physical key-value store serves two typed repositories:

- SuggestionCache: memoized AI suggestions keyed by vehicle and inputs hash
  (``pred:v:<vehicle_id>:h:<inputs_hash>``)
- RefreshCallCounter: per-user daily refresh counts
  (``refresh_calls:day:<iso_date>:<user_id>``)

Every value is stored in an envelope carrying the owner, the last write time
and the TTL. Freshness is decided when an entry is read; the engine never
deletes entries.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from automatenance.config import settings
from automatenance.predictions.suggestions import Suggestion, dump_suggestions, load_suggestions

logger = logging.getLogger(__name__)

# Key prefixes for namespace organization
CACHE_PREFIX = "ai_cache:"
PREDICTION_KEY_FORMAT = "pred:v:{vehicle_id}:h:{inputs_hash}"
REFRESH_CALLS_KEY_FORMAT = "refresh_calls:day:{day}:{user_id}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    """A stored value plus the metadata needed for the freshness check."""

    key: str
    user_id: str
    value: Dict[str, Any]
    updated_at: datetime
    ttl_seconds: int

    def is_fresh(self, now: datetime) -> bool:
        return (now - self.updated_at).total_seconds() < self.ttl_seconds


class AiCacheStore:
    """
    Envelope store over a Redis client.

    Read errors and timeouts are treated as misses and write errors are
    logged, so a cache outage degrades to extra provider calls rather than
    failed refreshes.

    Example usage:
        store = AiCacheStore(get_redis())
        await store.put("pred:v:1:h:abc", user_id, {"suggestions": []}, ttl_seconds=86400)
        entry = await store.get("pred:v:1:h:abc", user_id)
    """

    def __init__(
        self,
        client,
        clock: Callable[[], datetime] = utcnow,
        timeout: float = None,
        retention_grace_seconds: int = None,
    ):
        self.client = client
        self.clock = clock
        self.timeout = timeout if timeout is not None else settings.REDIS_TIMEOUT
        self.retention_grace_seconds = (
            retention_grace_seconds
            if retention_grace_seconds is not None
            else settings.AI_CACHE_RETENTION_GRACE_SECONDS
        )

    async def get(self, key: str, user_id: str) -> Optional[CacheEntry]:
        """Fetch an entry owned by ``user_id``; None when absent or unreadable."""
        if self.client is None:
            logger.error("Redis client not initialized - AI cache disabled")
            return None

        try:
            raw = await asyncio.wait_for(
                self.client.get(f"{CACHE_PREFIX}{key}"), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Timeout reading AI cache key {key}")
            return None
        except Exception as e:
            logger.error(f"Error reading AI cache key {key}: {e}")
            return None

        if not raw:
            return None

        try:
            envelope = json.loads(raw)
            entry = CacheEntry(
                key=key,
                user_id=envelope["user_id"],
                value=envelope.get("value") or {},
                updated_at=datetime.fromisoformat(envelope["updated_at"]),
                ttl_seconds=int(envelope["ttl_seconds"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed AI cache entry {key}: {e}")
            return None

        if entry.user_id != user_id:
            return None
        return entry

    async def put(self, key: str, user_id: str, value: Dict[str, Any], ttl_seconds: int) -> bool:
        """Upsert an entry, stamping ``updated_at`` with the current time."""
        if self.client is None:
            logger.error("Redis client not initialized - AI cache disabled")
            return False

        envelope = {
            "user_id": user_id,
            "value": value,
            "updated_at": self.clock().isoformat(),
            "ttl_seconds": ttl_seconds,
        }

        try:
            await asyncio.wait_for(
                self.client.set(
                    f"{CACHE_PREFIX}{key}",
                    json.dumps(envelope),
                    ex=ttl_seconds + self.retention_grace_seconds,
                ),
                timeout=self.timeout,
            )
            logger.debug(f"AI cache stored: {key} (TTL: {ttl_seconds}s)")
            return True
        except asyncio.TimeoutError:
            logger.error(f"Timeout writing AI cache key {key}")
            return False
        except Exception as e:
            logger.error(f"Error writing AI cache key {key}: {e}")
            return False


class SuggestionCache:
    """Memoized AI suggestions, content-addressed by inputs hash."""

    def __init__(self, store: AiCacheStore, ttl_seconds: int = None):
        self.backend = store
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.PREDICTION_CACHE_TTL

    @staticmethod
    def key(vehicle_id: str, inputs_hash: str) -> str:
        return PREDICTION_KEY_FORMAT.format(vehicle_id=vehicle_id, inputs_hash=inputs_hash)

    async def lookup(
        self, vehicle_id: str, inputs_hash: str, user_id: str
    ) -> Optional[List[Suggestion]]:
        """Cached suggestions when a fresh entry exists, else None.

        A fresh entry holding an empty list returns ``[]``, which is still a hit.
        """
        key = self.key(vehicle_id, inputs_hash)
        entry = await self.backend.get(key, user_id)
        if entry is None:
            logger.info(f"Prediction cache miss: {key}")
            return None
        if not entry.is_fresh(self.backend.clock()):
            logger.info(f"Prediction cache stale: {key}")
            return None
        if "suggestions" not in entry.value:
            return None

        logger.info(f"Prediction cache hit: {key}")
        return load_suggestions(entry.value["suggestions"])

    async def store(
        self, vehicle_id: str, inputs_hash: str, user_id: str, suggestions: List[Suggestion]
    ) -> bool:
        return await self.backend.put(
            self.key(vehicle_id, inputs_hash),
            user_id,
            {"suggestions": dump_suggestions(suggestions)},
            self.ttl_seconds,
        )


class RefreshCallCounter:
    """Per-user count of refresh requests for a UTC day."""

    def __init__(self, store: AiCacheStore, ttl_seconds: int = None):
        self.backend = store
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.REFRESH_COUNTER_TTL

    @staticmethod
    def key(user_id: str, day: date) -> str:
        return REFRESH_CALLS_KEY_FORMAT.format(day=day.isoformat(), user_id=user_id)

    async def current(self, user_id: str, day: date) -> int:
        entry = await self.backend.get(self.key(user_id, day), user_id)
        if entry is None:
            return 0
        count = entry.value.get("count")
        if isinstance(count, bool) or not isinstance(count, (int, float)):
            return 0
        return int(count)

    async def record(self, user_id: str, day: date, count: int) -> bool:
        return await self.backend.put(
            self.key(user_id, day), user_id, {"count": count}, self.ttl_seconds
        )
