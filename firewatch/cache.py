import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from redis.asyncio import Redis

from firewatch.caching.inflight import InFlightRegistry
from firewatch.caching.store import TTLStore
from firewatch.settings import S

logger = logging.getLogger(__name__)

SENSOR_STORE = "sensors"
RESULT_STORE = "results"
FIRE_STATS_STORE = "fire_stats"

LOCATION_CACHE_PREFIX = "geocode:rev"


class CacheService:
    """Process-wide TTL stores plus the in-flight registry shared by every fetch.

    One instance is built at startup and handed to the fetcher, the listing
    service and the stats service.
    """

    def __init__(self, default_ttl: float, enabled: bool = True, clock: Optional[Callable[[], float]] = None):
        self._enabled = enabled
        kwargs = {"clock": clock} if clock is not None else {}
        self.stores: Dict[str, TTLStore[Any]] = {
            name: TTLStore(name, default_ttl, **kwargs)
            for name in (SENSOR_STORE, RESULT_STORE, FIRE_STATS_STORE)
        }
        self.in_flight: InFlightRegistry[Any] = InFlightRegistry()

    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def store(self, name: str) -> TTLStore[Any]:
        return self.stores[name]

    def get(self, store: str, key: str) -> Optional[Any]:
        # Disabled behaves as a permanent miss; writes still land so re-enabling is transparent.
        if not self._enabled:
            return None
        return self.stores[store].get(key)

    def set(self, store: str, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self.stores[store].set(key, value, ttl)

    def clear_all(self) -> None:
        # No await in here: on a single event loop nobody can observe a half-cleared state.
        for s in self.stores.values():
            s.clear()
        self.in_flight.clear()

    async def get_or_fetch(
        self,
        store: str,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        cached = self.get(store, key)
        if cached is not None:
            logger.debug("cache hit %s/%s", store, key)
            return cached
        logger.debug("cache miss %s/%s", store, key)

        async def _compute() -> Any:
            value = await factory()
            self.set(store, key, value, ttl)
            return value

        return await self.in_flight.get_or_create(f"{store}:{key}", _compute)

    def status(self) -> Dict[str, Any]:
        return {
            "enabled": self._enabled,
            "stores": {name: len(s) for name, s in self.stores.items()},
            "inFlight": len(self.in_flight),
        }


class LocationCache:
    """Redis-backed reverse-geocoding results, shared between processes.

    Purely an optimisation: every Redis error is logged and treated as a miss.
    """

    def __init__(self, redis_client: Redis, ttl_seconds: Optional[int]):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(lat: float, lon: float) -> str:
        return f"{LOCATION_CACHE_PREFIX}:{lat:.4f}:{lon:.4f}"

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            cached = await self.redis.get(key)
        except Exception as exc:
            logger.debug("location cache get error: %s", exc)
            return None
        if not cached:
            return None
        try:
            return json.loads(cached)
        except ValueError:
            return None

    async def set_json(self, key: str, value: Any) -> None:
        raw = json.dumps(value, separators=(",", ":"))
        try:
            # Redis rejects EX=0 / negative
            if self.ttl_seconds is None or int(self.ttl_seconds) <= 0:
                await self.redis.set(key, raw)
            else:
                await self.redis.set(key, raw, ex=int(self.ttl_seconds))
        except Exception as exc:
            logger.debug("location cache set error: %s", exc)

    async def clear_prefixes(self, prefixes: List[str], *, dry_run: bool = False, batch_size: int = 1000) -> Dict[str, Any]:
        """Delete cached locations for one or more key prefixes."""
        deleted_total = 0
        details: Dict[str, int] = {p: 0 for p in prefixes if p}

        for p in details:
            cursor = 0
            while True:
                cursor, keys = await self.redis.scan(cursor=cursor, match=f"{p}:*", count=batch_size)
                if keys:
                    if dry_run:
                        n = len(keys)
                    else:
                        n = int(await self.redis.unlink(*keys) or 0)
                    details[p] += n
                    deleted_total += n
                if cursor == 0:
                    break

        return {"deleted": deleted_total, "by_prefix": details, "dry_run": dry_run}


redis_client: Optional[Redis] = None
cache_service: Optional[CacheService] = None
location_cache: Optional[LocationCache] = None


async def init_cache() -> None:
    global redis_client, cache_service, location_cache

    cache_service = CacheService(default_ttl=S.cache_ttl_seconds, enabled=S.cache_enabled)

    if not S.location_cache_enable:
        return

    redis_client = Redis.from_url(S.redis_url, decode_responses=True)
    try:
        await redis_client.ping()
    except Exception as e:
        logger.warning("Location cache: Redis not reachable at %s, running without it: %s", S.redis_url, e)
        await redis_client.aclose()
        redis_client = None
        return

    location_cache = LocationCache(redis_client, S.location_cache_ttl_seconds)


async def close_cache() -> None:
    global redis_client, location_cache
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
        location_cache = None


def get_cache_service() -> CacheService:
    if cache_service is None:
        raise RuntimeError("Cache service not initialized")
    return cache_service


def get_location_cache() -> Optional[LocationCache]:
    return location_cache
