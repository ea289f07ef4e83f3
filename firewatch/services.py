import logging
from typing import Optional, Tuple

import httpx

from firewatch.cache import CacheService, LocationCache
from firewatch.errors import BoundaryDatasetError
from firewatch.firms.client import FirmsClient
from firewatch.firms.fetcher import FireFetcher
from firewatch.fires.service import FireService
from firewatch.fires.stats import FireStatsService
from firewatch.geo.boundaries import MunicipalityMatcher
from firewatch.geo.enrichment import LocationEnricher
from firewatch.geo.mapbox import MapboxReverseGeocoder
from firewatch.settings import S

logger = logging.getLogger(__name__)

http_client: Optional[httpx.AsyncClient] = None
matcher: Optional[MunicipalityMatcher] = None
fire_service: Optional[FireService] = None
stats_service: Optional[FireStatsService] = None


def load_matcher() -> Tuple[Optional[MunicipalityMatcher], Optional[str]]:
    """Return (matcher, error); a missing or broken dataset is not fatal."""
    try:
        return (
            MunicipalityMatcher.from_geojson(
                S.boundaries_path,
                name_fields=S.boundary_name_fields,
                region_field=S.boundary_region_field,
            ),
            None,
        )
    except BoundaryDatasetError as e:
        logger.warning("Boundary dataset unavailable, every enrichment will use reverse geocoding: %s", e.message)
        return None, e.message


def init_services(cache: CacheService, location_cache: Optional[LocationCache] = None) -> None:
    global http_client, matcher, fire_service, stats_service

    http_client = httpx.AsyncClient(timeout=S.upstream_timeout_seconds, follow_redirects=True)
    matcher, matcher_error = load_matcher()

    client = FirmsClient(http_client, S.firms_base_url, S.firms_map_key, timeout=S.upstream_timeout_seconds)
    fetcher = FireFetcher(client, cache, S.firms_sources, S.region_bbox)
    geocoder = MapboxReverseGeocoder(
        http_client,
        token=S.mapbox_token,
        batch_url=S.mapbox_batch_url,
        batch_size=S.geocode_batch_size,
        concurrency=S.geocode_concurrency,
        timeout=S.upstream_timeout_seconds,
        location_cache=location_cache,
    )
    enricher = LocationEnricher(matcher, geocoder, matcher_error=matcher_error)
    fire_service = FireService(fetcher, enricher, max_records_all=S.max_records_all)
    stats_service = FireStatsService(fire_service, cache)


async def close_services() -> None:
    global http_client
    if http_client is not None:
        await http_client.aclose()
        http_client = None


def get_fire_service() -> FireService:
    if fire_service is None:
        raise RuntimeError("Fire service not initialized")
    return fire_service


def get_stats_service() -> FireStatsService:
    if stats_service is None:
        raise RuntimeError("Stats service not initialized")
    return stats_service


def boundary_count() -> int:
    return len(matcher) if matcher is not None else 0
