import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from firewatch.cache import RESULT_STORE, SENSOR_STORE, CacheService
from firewatch.caching.keys import listing_key, sensor_key
from firewatch.firms.client import FirmsClient

logger = logging.getLogger(__name__)


def _hhmm(value: Any) -> str:
    s = str(value or "").strip().replace(":", "")
    return s.zfill(4)[-4:]


def in_time_range(acq_time: Any, time_range: Mapping[str, str]) -> bool:
    """Inclusive HH:MM window; an end before the start wraps past midnight."""
    t = _hhmm(acq_time)
    start = _hhmm(time_range.get("start"))
    end = _hhmm(time_range.get("end"))
    if start <= end:
        return start <= t <= end
    return t >= start or t <= end


def filter_time_range(rows: List[Dict[str, Any]], time_range: Optional[Mapping[str, str]]) -> List[Dict[str, Any]]:
    if not time_range or not time_range.get("start") or not time_range.get("end"):
        return rows
    return [r for r in rows if in_time_range(r.get("acq_time"), time_range)]


class FireFetcher:
    """Raw hotspot rows for the configured region, across every FIRMS source.

    Both the per-source download and the merged result go through the cache
    service, so concurrent identical listings hit FIRMS once per source.
    """

    def __init__(self, client: FirmsClient, cache: CacheService, sources: Sequence[str], bbox: Sequence[float]):
        self.client = client
        self.cache = cache
        self.sources = list(sources)
        self.bbox = tuple(float(v) for v in bbox)

    async def fetch_fires(self, options: Mapping[str, Any]) -> List[Dict[str, Any]]:
        date = str(options["date"])
        day_range = int(options["dayRange"])
        time_range = options.get("timeRange")

        key = listing_key(date, day_range, time_range)

        async def _fetch_all() -> List[Dict[str, Any]]:
            # gather fails fast: one source down means no listing, never a partial one
            per_source = await asyncio.gather(
                *(self._fetch_source(source, day_range, date) for source in self.sources)
            )
            merged: List[Dict[str, Any]] = []
            for rows in per_source:
                merged.extend(rows)
            return filter_time_range(merged, time_range)

        return await self.cache.get_or_fetch(RESULT_STORE, key, _fetch_all)

    async def _fetch_source(self, source: str, day_range: int, date: str) -> List[Dict[str, Any]]:
        key = sensor_key(source, self.bbox, day_range, date)

        async def _download() -> List[Dict[str, Any]]:
            rows = await self.client.fetch_csv(source, self.bbox, day_range, date)
            return [{**row, "source": source} for row in rows]

        return await self.cache.get_or_fetch(SENSOR_STORE, key, _download)
