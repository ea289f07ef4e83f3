"""Async download of NASA FIRMS area CSV feeds."""

import csv
import io
import logging
from typing import Dict, List, Sequence

import httpx

from firewatch.errors import UpstreamFetchFailure

logger = logging.getLogger(__name__)

# FIRMS answers some errors with a 200 and a one-line text body instead of CSV.
_FIRMS_TEXT_ERRORS = ("invalid map_key", "invalid api call", "exceeding allowed transaction limit")


def format_bbox(bbox: Sequence[float]) -> str:
    return ",".join(f"{float(v):g}" for v in bbox)


def build_firms_url(base_url: str, map_key: str, source: str, bbox: Sequence[float], day_range: int, date: str) -> str:
    """Construct the FIRMS API URL for a given source and spatial window."""
    return f"{base_url.rstrip('/')}/{map_key}/{source}/{format_bbox(bbox)}/{int(day_range)}/{date}"


class FirmsClient:
    def __init__(self, http: httpx.AsyncClient, base_url: str, map_key: str, timeout: float = 10.0):
        self.http = http
        self.base_url = base_url
        self.map_key = map_key
        self.timeout = timeout

    async def fetch_csv(self, source: str, bbox: Sequence[float], day_range: int, date: str) -> List[Dict[str, str]]:
        if not self.map_key:
            raise UpstreamFetchFailure("FIRMS map key is not configured (FIRMS_MAP_KEY).")

        url = build_firms_url(self.base_url, self.map_key, source, bbox, day_range, date)
        logger.info("Requesting FIRMS CSV source=%s dayRange=%s date=%s", source, day_range, date)
        try:
            response = await self.http.get(url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("FIRMS request timed out for %s: %s", source, exc)
            raise UpstreamFetchFailure(f"FIRMS request timed out for {source}") from exc
        except httpx.HTTPError as exc:
            logger.warning("FIRMS request failed for %s: %s", source, exc)
            raise UpstreamFetchFailure(f"Failed to fetch FIRMS data for {source}: {exc}") from exc

        text = response.text.strip()
        if not text:
            return []
        first_line = text.splitlines()[0].strip().lower()
        if any(first_line.startswith(e) for e in _FIRMS_TEXT_ERRORS):
            logger.warning("FIRMS rejected request for %s: %s", source, first_line)
            raise UpstreamFetchFailure(f"FIRMS rejected request for {source}: {text.splitlines()[0].strip()}")

        rows = list(csv.DictReader(io.StringIO(text)))
        logger.info("Fetched %s rows from FIRMS source=%s", len(rows), source)
        return rows
