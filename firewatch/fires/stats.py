from collections import Counter
from datetime import date as date_cls
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from firewatch.cache import FIRE_STATS_STORE, CacheService
from firewatch.caching.keys import stats_key
from firewatch.fires.query import parse_query
from firewatch.fires.service import FireService, build_metadata
from firewatch.settings import S

Record = Dict[str, Any]

WEEK_DAYS = 7


def summarize(records: Sequence[Record]) -> Dict[str, Any]:
    by_sensor = Counter(str(r.get("sensor") or "N/A") for r in records)
    by_confidence = Counter(str(r.get("confidence") or "N/A") for r in records)
    day = sum(1 for r in records if str(r.get("daynight") or "").upper() == "D")
    night = sum(1 for r in records if str(r.get("daynight") or "").upper() == "N")

    frps = [float(r["frp"]) for r in records if isinstance(r.get("frp"), (int, float))]
    frp = {
        "max": max(frps) if frps else None,
        "medio": round(sum(frps) / len(frps), 2) if frps else None,
        "total": round(sum(frps), 2),
    }
    return {
        "totalFocos": len(records),
        "porSensor": dict(sorted(by_sensor.items())),
        "porPeriodo": {"dia": day, "noite": night},
        "porConfianca": dict(sorted(by_confidence.items())),
        "frp": frp,
    }


def daily_counts(records: Sequence[Record], start: date_cls, days: int) -> List[Dict[str, Any]]:
    counts = Counter(r.get("acq_date") for r in records)
    out: List[Dict[str, Any]] = []
    for i in range(days):
        d = (start + timedelta(days=i)).isoformat()
        out.append({"data": d, "totalFocos": int(counts.get(d, 0))})
    return out


class FireStatsService:
    """Aggregates over normalized hotspots, cached in the fire_stats store."""

    def __init__(self, fire_service: FireService, cache: CacheService):
        self.fire_service = fire_service
        self.cache = cache

    async def stats(self, query: Mapping[str, Any]) -> Dict[str, Any]:
        params = parse_query(query)
        options = params.fetch_options()

        async def _compute() -> Dict[str, Any]:
            records = await self.fire_service.list_all(options)
            return {
                "metadados": build_metadata(params, len(records), self.fire_service.now()),
                "estatisticas": summarize(records),
            }

        return await self.cache.get_or_fetch(
            FIRE_STATS_STORE, stats_key({"kind": "stats", "sort": params.sort, **options}), _compute
        )

    async def weekly_stats(self, today: Optional[date_cls] = None) -> Dict[str, Any]:
        if today is None:
            today = datetime.now(ZoneInfo(S.region_timezone)).date()
        start = today - timedelta(days=WEEK_DAYS - 1)
        options = {"date": start.isoformat(), "dayRange": WEEK_DAYS}

        async def _compute() -> Dict[str, Any]:
            records = await self.fire_service.list_all(options)
            dados = daily_counts(records, start, WEEK_DAYS)
            return {
                "metadados": {
                    "inicio": start.isoformat(),
                    "fim": today.isoformat(),
                    "total": sum(d["totalFocos"] for d in dados),
                    "timestampConsulta": self.fire_service.now(),
                },
                "dados": dados,
            }

        return await self.cache.get_or_fetch(FIRE_STATS_STORE, stats_key({"weekly": start.isoformat()}), _compute)
