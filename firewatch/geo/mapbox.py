import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from firewatch.cache import LocationCache
from firewatch.errors import EnrichmentFailure
from firewatch.geo.boundaries import NOT_AVAILABLE, UNRESOLVED, Location, valid_point

logger = logging.getLogger(__name__)

# Most specific first; Mapbox fills whichever of these it knows for a point.
_LOCALITY_CONTEXT = ("place", "locality", "district")


def location_from_feature_collection(fc: Any) -> Location:
    features = (fc or {}).get("features") if isinstance(fc, dict) else None
    if not features:
        return UNRESOLVED

    props = (features[0] or {}).get("properties") or {}
    context = props.get("context") or {}
    if props.get("feature_type") in _LOCALITY_CONTEXT and props.get("name"):
        return Location(municipality=str(props["name"]))
    for level in _LOCALITY_CONTEXT:
        name = (context.get(level) or {}).get("name")
        if name:
            return Location(municipality=str(name))
    return UNRESOLVED


class MapboxReverseGeocoder:
    """Reverse geocoding through the Mapbox v6 batch endpoint.

    Points are sent in chunks of ``batch_size`` with at most ``concurrency``
    requests in flight. Results carry a municipality only; Mapbox has no notion
    of regional commands. Any failed batch fails the whole call.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        token: str,
        batch_url: str,
        batch_size: int = 50,
        concurrency: int = 2,
        timeout: float = 10.0,
        location_cache: Optional[LocationCache] = None,
        language: str = "pt",
    ):
        self.http = http
        self.token = token
        self.batch_url = batch_url
        self.batch_size = max(1, min(1000, int(batch_size)))
        self.timeout = timeout
        self.location_cache = location_cache
        self.language = language
        self._semaphore = asyncio.Semaphore(max(1, int(concurrency)))

    async def batch_geocode(self, points: Sequence[Tuple[Any, Any]]) -> List[Location]:
        """Resolve (lon, lat) pairs, preserving input order."""
        results: List[Optional[Location]] = [None] * len(points)
        pending: List[Tuple[int, float, float]] = []

        for i, (lon, lat) in enumerate(points):
            pt = valid_point(lon, lat)
            if pt is None:
                results[i] = UNRESOLVED
                continue
            x, y = pt
            cached = await self._cached(x, y)
            if cached is not None:
                results[i] = cached
            else:
                pending.append((i, x, y))

        if pending:
            if not self.token:
                raise EnrichmentFailure("Reverse geocoding is not configured (MAPBOX_TOKEN).")
            chunks = [pending[i:i + self.batch_size] for i in range(0, len(pending), self.batch_size)]
            resolved = await asyncio.gather(*(self._geocode_chunk(c) for c in chunks))
            for chunk, locations in zip(chunks, resolved):
                for (i, x, y), loc in zip(chunk, locations):
                    results[i] = loc
                    await self._store(x, y, loc)

        return [r if r is not None else UNRESOLVED for r in results]

    async def _geocode_chunk(self, chunk: Sequence[Tuple[int, float, float]]) -> List[Location]:
        body = [
            {
                "longitude": x,
                "latitude": y,
                "types": ["place", "locality", "district"],
                "limit": 1,
                "language": self.language,
            }
            for _, x, y in chunk
        ]
        async with self._semaphore:
            try:
                response = await self.http.post(
                    self.batch_url,
                    params={"access_token": self.token},
                    json=body,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as exc:
                logger.warning("Mapbox batch geocoding failed: %s", exc)
                raise EnrichmentFailure(f"Reverse geocoding failed: {exc}") from exc
            except ValueError as exc:
                raise EnrichmentFailure("Reverse geocoding response is not valid JSON") from exc

        batch = data.get("batch") if isinstance(data, dict) else None
        if not isinstance(batch, list) or len(batch) != len(chunk):
            raise EnrichmentFailure("Reverse geocoding returned an unexpected batch shape")
        return [location_from_feature_collection(fc) for fc in batch]

    async def _cached(self, lon: float, lat: float) -> Optional[Location]:
        if self.location_cache is None:
            return None
        cached = await self.location_cache.get_json(LocationCache.key(lat, lon))
        if not isinstance(cached, dict):
            return None
        return Location(
            municipality=str(cached.get("municipality") or NOT_AVAILABLE),
            regional_command=str(cached.get("regionalCommand") or NOT_AVAILABLE),
        )

    async def _store(self, lon: float, lat: float, loc: Location) -> None:
        # only real answers are worth sharing
        if self.location_cache is None or not loc.resolved:
            return
        await self.location_cache.set_json(LocationCache.key(lat, lon), loc.to_dict())
