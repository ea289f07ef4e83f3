import hashlib
import json
from typing import Any, Dict, Mapping, Optional, Sequence

SENSOR_PREFIX = "sensor"
LISTING_PREFIX = "listing"
STATS_PREFIX = "fire_stats"


def sha1_json(obj: Any) -> str:
    s = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str)
    return hashlib.sha1(s.encode("utf-8")).hexdigest()


def cache_key(prefix: str, payload: Any) -> str:
    return f"{prefix}:{sha1_json(payload)}"


def sensor_key(sensor: str, bbox: Sequence[float], day_range: int, date: str) -> str:
    """Key for one FIRMS source download over a bbox."""
    payload = {
        "sensor": sensor,
        "bbox": [float(v) for v in bbox],
        "dayRange": int(day_range),
        "date": str(date),
    }
    return cache_key(SENSOR_PREFIX, payload)


def listing_key(date: str, day_range: int, time_range: Optional[Mapping[str, str]] = None) -> str:
    """Key for the merged, time-filtered fetch behind a fire listing."""
    payload: Dict[str, Any] = {"date": str(date), "dayRange": int(day_range), "timeRange": None}
    if time_range:
        payload["timeRange"] = {"start": time_range.get("start"), "end": time_range.get("end")}
    return cache_key(LISTING_PREFIX, payload)


def stats_key(query: Mapping[str, Any]) -> str:
    return cache_key(STATS_PREFIX, dict(query))
