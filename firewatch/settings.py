import os
from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass
class Settings:
    firms_map_key: str
    firms_base_url: str
    firms_sources: List[str]
    region_bbox: Tuple[float, float, float, float]
    region_timezone: str
    upstream_timeout_seconds: float

    cache_enabled: bool
    cache_ttl_seconds: int
    cache_clear_token: str
    cache_clear_local_only: bool

    max_records_all: int
    default_page_size: int
    default_day_range: int

    boundaries_path: str
    boundary_name_fields: List[str]
    boundary_region_field: str

    mapbox_token: str
    mapbox_batch_url: str
    geocode_batch_size: int
    geocode_concurrency: int

    location_cache_enable: bool
    redis_url: str
    location_cache_ttl_seconds: int

    cors_origins: List[str]
    cors_origin_regex: Optional[str]
    log_level: str

    @classmethod
    def from_env(cls) -> "Settings":
        def _bool(name: str, default: str) -> bool:
            return os.getenv(name, default).strip().lower() == "true"

        def _list(name: str, default: str) -> List[str]:
            return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]

        firms_map_key = os.getenv("FIRMS_MAP_KEY", "").strip()
        firms_base_url = os.getenv("FIRMS_BASE_URL", "https://firms.modaps.eosdis.nasa.gov/api/area/csv")
        firms_sources = _list("FIRMS_SOURCES", "VIIRS_SNPP_NRT,VIIRS_NOAA20_NRT,VIIRS_NOAA21_NRT,MODIS_NRT")

        # west,south,east,north; default covers Mato Grosso
        raw_bbox = _list("REGION_BBOX", "-61.64,-18.05,-50.22,-7.35")
        if len(raw_bbox) != 4:
            raise RuntimeError(f"REGION_BBOX must have 4 comma-separated values, got {raw_bbox}")
        w, s, e, n = (float(v) for v in raw_bbox)
        region_bbox = (w, s, e, n)

        region_timezone = os.getenv("REGION_TIMEZONE", "America/Cuiaba").strip()
        upstream_timeout_seconds = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))

        cache_enabled = _bool("CACHE_ENABLED", "true")
        cache_ttl_seconds = int(os.getenv("CACHE_TTL_SECONDS", "1800"))
        cache_clear_token = os.getenv("CACHE_CLEAR_TOKEN", "").strip()
        cache_clear_local_only = _bool("CACHE_CLEAR_LOCAL_ONLY", "true")

        max_records_all = int(os.getenv("MAX_RECORDS_ALL", "10000"))
        default_page_size = int(os.getenv("DEFAULT_PAGE_SIZE", "25"))
        default_day_range = int(os.getenv("DEFAULT_DAY_RANGE", "1"))

        boundaries_path = os.getenv("BOUNDARIES_PATH", "data/municipios_por_comando_regional.geojson")
        boundary_name_fields = _list("BOUNDARY_NAME_FIELDS", "name,NM_MUN,municipio")
        boundary_region_field = os.getenv("BOUNDARY_REGION_FIELD", "comandoRegional").strip()

        mapbox_token = os.getenv("MAPBOX_TOKEN", "").strip()
        mapbox_batch_url = os.getenv("MAPBOX_BATCH_URL", "https://api.mapbox.com/search/geocode/v6/batch")
        # Mapbox accepts up to 1000 queries per batch; smaller batches keep us under the rate limit.
        geocode_batch_size = int(os.getenv("GEOCODE_BATCH_SIZE", "50"))
        geocode_concurrency = int(os.getenv("GEOCODE_CONCURRENCY", "2"))

        location_cache_enable = _bool("LOCATION_CACHE_ENABLE", "false")
        redis_url = os.getenv("REDIS_URL", "redis://redis:6379/0")
        location_cache_ttl_seconds = int(os.getenv("LOCATION_CACHE_TTL_SECONDS", "604800"))

        cors_origins = _list(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000",
        )
        cors_origin_regex = os.getenv("CORS_ORIGIN_REGEX", "").strip() or r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()

        return cls(
            firms_map_key=firms_map_key,
            firms_base_url=firms_base_url,
            firms_sources=firms_sources,
            region_bbox=region_bbox,
            region_timezone=region_timezone,
            upstream_timeout_seconds=upstream_timeout_seconds,
            cache_enabled=cache_enabled,
            cache_ttl_seconds=cache_ttl_seconds,
            cache_clear_token=cache_clear_token,
            cache_clear_local_only=cache_clear_local_only,
            max_records_all=max_records_all,
            default_page_size=default_page_size,
            default_day_range=default_day_range,
            boundaries_path=boundaries_path,
            boundary_name_fields=boundary_name_fields,
            boundary_region_field=boundary_region_field,
            mapbox_token=mapbox_token,
            mapbox_batch_url=mapbox_batch_url,
            geocode_batch_size=geocode_batch_size,
            geocode_concurrency=geocode_concurrency,
            location_cache_enable=location_cache_enable,
            redis_url=redis_url,
            location_cache_ttl_seconds=location_cache_ttl_seconds,
            cors_origins=cors_origins,
            cors_origin_regex=cors_origin_regex,
            log_level=log_level,
        )


S = Settings.from_env()
