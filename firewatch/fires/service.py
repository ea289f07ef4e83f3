"""Fire listing: fetch, normalize, sort, paginate and describe hotspots.

Every listing response has the same envelope::

    {"metadados": {"parametrosBusca": {...}, "timestampConsulta": ..., "totalFocos": N,
                   "paginacao": {...}},   # paged mode only
     "dados": [...]}

``all=true`` skips pagination but is capped by ``max_records_all``; going
over the cap raises ``OverLimitError`` rather than truncating.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from firewatch.errors import OverLimitError
from firewatch.firms.fetcher import FireFetcher
from firewatch.firms.model import route_by_format, sort_fires
from firewatch.fires.query import ListMode, QueryParams, parse_query
from firewatch.geo.enrichment import LocationEnricher

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

MAX_RECORDS_ALL = 10000


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_non_empty_list(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) > 0


def route_list_all(fires_raw: Any) -> List[Record]:
    # Empty or non-list payloads never reach the format router.
    if not is_non_empty_list(fires_raw):
        return []
    return route_by_format(fires_raw)


def get_paged_data(records: Sequence[Record], page: int, limit: int) -> List[Record]:
    start = (page - 1) * limit
    return list(records[start:start + limit])


def get_total_pages(total: int, limit: Optional[int]) -> int:
    if not limit or not isinstance(limit, int) or limit <= 0:
        return 0
    return math.ceil(total / limit)


def time_range_metadata(params: QueryParams) -> Dict[str, Any]:
    tr = params.time_range
    if tr is None or not tr.start or not tr.end:
        return {}
    return {"intervaloHoras": {"inicio": tr.start, "fim": tr.end}}


def build_metadata(params: QueryParams, total: int, timestamp: str) -> Dict[str, Any]:
    return {
        "parametrosBusca": {
            "data": params.date,
            "diasConsiderados": params.day_range,
            "ordenacao": params.sort,
            **time_range_metadata(params),
        },
        "timestampConsulta": timestamp,
        "totalFocos": total,
    }


class FireService:
    def __init__(
        self,
        fetcher: FireFetcher,
        enricher: LocationEnricher,
        max_records_all: int = MAX_RECORDS_ALL,
        now: Callable[[], str] = utc_now_iso,
    ):
        self.fetcher = fetcher
        self.enricher = enricher
        self.max_records_all = max_records_all
        self.now = now

    async def list_all(self, options: Mapping[str, Any]) -> List[Record]:
        """Raw hotspots for ``options`` routed through the format normalizer."""
        fires_raw = await self.fetcher.fetch_fires(options)
        return route_list_all(fires_raw)

    async def list_formatted_paginated(self, query: Mapping[str, Any]) -> Dict[str, Any]:
        params = parse_query(query)
        if params.mode is ListMode.all:
            return await self._all_fires_no_pagination(params)
        return await self._paged_fires(params)

    async def list_all_with_location(self, query: Mapping[str, Any]) -> Dict[str, Any]:
        result = await self.list_formatted_paginated({**query, "all": True})
        fires_with_location = await self.enricher.add_location_data(result["dados"])
        return {"metadados": result["metadados"], "firesWithLocation": fires_with_location}

    async def _sorted_fires(self, params: QueryParams) -> List[Record]:
        fires = await self.list_all(params.fetch_options())
        return sort_fires(fires, params.sort)

    async def _all_fires_no_pagination(self, params: QueryParams) -> Dict[str, Any]:
        ordered = await self._sorted_fires(params)
        if len(ordered) > self.max_records_all:
            logger.info("all=true rejected: %s records over limit %s", len(ordered), self.max_records_all)
            raise OverLimitError(limit=self.max_records_all, total=len(ordered))
        return {
            "metadados": build_metadata(params, len(ordered), self.now()),
            "dados": ordered,
        }

    async def _paged_fires(self, params: QueryParams) -> Dict[str, Any]:
        ordered = await self._sorted_fires(params)
        metadados = build_metadata(params, len(ordered), self.now())
        metadados["paginacao"] = {
            "paginaAtual": params.page,
            "itensPorPagina": params.limit,
            "totalPaginas": get_total_pages(len(ordered), params.limit),
        }
        return {"metadados": metadados, "dados": get_paged_data(ordered, params.page, params.limit)}
