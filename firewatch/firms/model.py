"""Normalization and ordering of FIRMS hotspot rows.

FIRMS serves a different CSV layout per instrument: VIIRS rows carry
``bright_ti4``/``bright_ti5`` and a letter confidence, MODIS rows carry
``brightness``/``bright_t31`` and a 0-100 confidence. ``route_by_format``
picks the normalizer once per payload and returns records that share a
single shape, whatever the source.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

VIIRS_CONFIDENCE = {"l": "low", "n": "nominal", "h": "high"}
CONFIDENCE_RANK = {"high": 0, "h": 0, "nominal": 1, "n": 1, "low": 2, "l": 2}

DEFAULT_SORT = "sensor"


def _float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _acq(row: Mapping[str, Any]) -> Dict[str, Optional[str]]:
    acq_date = str(row.get("acq_date") or "").strip() or None
    raw_time = str(row.get("acq_time") or "").strip().replace(":", "")
    acq_time = None
    if raw_time.isdigit():
        hhmm = raw_time.zfill(4)[-4:]
        acq_time = f"{hhmm[:2]}:{hhmm[2:]}"

    acq_datetime = None
    if acq_date and acq_time:
        try:
            dt = datetime.strptime(f"{acq_date} {acq_time}", "%Y-%m-%d %H:%M").replace(tzinfo=timezone.utc)
            acq_datetime = dt.isoformat().replace("+00:00", "Z")
        except ValueError:
            pass
    return {"acq_date": acq_date, "acq_time": acq_time, "acq_datetime": acq_datetime}


def _base(row: Mapping[str, Any]) -> Optional[Record]:
    lat = _float(row.get("latitude"))
    lon = _float(row.get("longitude"))
    if lat is None or lon is None:
        return None
    return {
        "latitude": lat,
        "longitude": lon,
        **_acq(row),
        "satellite": row.get("satellite"),
        "instrument": row.get("instrument"),
        "sensor": row.get("source") or row.get("sensor") or row.get("instrument"),
        "frp": _float(row.get("frp")),
        "daynight": row.get("daynight"),
        "version": row.get("version"),
    }


def normalize_viirs(row: Mapping[str, Any]) -> Optional[Record]:
    rec = _base(row)
    if rec is None:
        return None
    conf = str(row.get("confidence") or "").strip().lower()
    rec["instrument"] = rec["instrument"] or "VIIRS"
    rec["brightness"] = _float(row.get("bright_ti4"))
    rec["brightness_2"] = _float(row.get("bright_ti5"))
    rec["confidence"] = VIIRS_CONFIDENCE.get(conf, conf or None)
    return rec


def normalize_modis(row: Mapping[str, Any]) -> Optional[Record]:
    rec = _base(row)
    if rec is None:
        return None
    conf = row.get("confidence")
    rec["instrument"] = rec["instrument"] or "MODIS"
    rec["brightness"] = _float(row.get("brightness"))
    rec["brightness_2"] = _float(row.get("bright_t31"))
    rec["confidence"] = str(conf).strip() if conf not in (None, "") else None
    return rec


def normalize_generic(row: Mapping[str, Any]) -> Optional[Record]:
    rec = _base(row)
    if rec is None:
        return None
    known = set(rec) | {"source"}
    rec.setdefault("brightness", _float(row.get("brightness")))
    rec.setdefault("brightness_2", None)
    rec.setdefault("confidence", row.get("confidence"))
    for k, v in row.items():
        if k not in known and k not in rec:
            rec[k] = v
    return rec


def _is_normalized(row: Mapping[str, Any]) -> bool:
    return "sensor" in row and isinstance(row.get("latitude"), float) and "acq_datetime" in row


def _pick_normalizer(first: Mapping[str, Any]) -> Optional[Callable[[Mapping[str, Any]], Optional[Record]]]:
    if _is_normalized(first):
        return None
    if "bright_ti4" in first:
        return normalize_viirs
    if "brightness" in first:
        return normalize_modis
    return normalize_generic


def route_by_format(rows: Sequence[Mapping[str, Any]]) -> List[Record]:
    """Normalize a raw FIRMS payload; rows without usable coordinates are dropped.

    Payloads merged from several sources mix layouts, so the layout is
    decided per source id (the first row of each source picks its normalizer).
    """
    normalizers: Dict[Any, Optional[Callable[[Mapping[str, Any]], Optional[Record]]]] = {}
    out: List[Record] = []
    dropped = 0
    for row in rows:
        src = row.get("source")
        if src not in normalizers:
            normalizers[src] = _pick_normalizer(row)
        fn = normalizers[src]
        if fn is None:
            out.append(dict(row))
            continue
        rec = fn(row)
        if rec is None:
            dropped += 1
            continue
        out.append(rec)
    if dropped:
        logger.info("Dropped %s hotspot rows without usable coordinates", dropped)
    return out


def _missing_last(value: Any, reverse: bool = False):
    # (is_missing, value) keeps None out of comparisons
    if value is None:
        return (1, 0)
    if reverse and isinstance(value, (int, float)):
        return (0, -value)
    return (0, value)


_SORTS: Dict[str, Callable[[Record], Any]] = {
    "sensor": lambda r: (_missing_last(r.get("sensor")), _missing_last(r.get("acq_datetime"))),
    "frp": lambda r: _missing_last(r.get("frp"), reverse=True),
    "brightness": lambda r: _missing_last(r.get("brightness"), reverse=True),
    "confidence": lambda r: _missing_last(CONFIDENCE_RANK.get(str(r.get("confidence") or "").lower(), _modis_rank(r))),
    "latitude": lambda r: _missing_last(r.get("latitude")),
    "longitude": lambda r: _missing_last(r.get("longitude")),
}


def _modis_rank(r: Record) -> Optional[int]:
    # MODIS confidence is 0-100; bucket it like the VIIRS letters
    v = _float(r.get("confidence"))
    if v is None:
        return None
    if v >= 80:
        return 0
    if v >= 30:
        return 1
    return 2


def sort_fires(records: Sequence[Record], sort: Optional[str] = None) -> List[Record]:
    """Return a new list ordered by ``sort``; unknown keys fall back to sensor."""
    key = (sort or DEFAULT_SORT).strip().lower()
    if key in ("date", "datetime", "data"):
        present = [r for r in records if r.get("acq_datetime")]
        missing = [r for r in records if not r.get("acq_datetime")]
        return sorted(present, key=lambda r: r["acq_datetime"], reverse=True) + missing
    return sorted(records, key=_SORTS.get(key, _SORTS[DEFAULT_SORT]))
