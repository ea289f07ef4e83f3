"""Lenient parsing of listing query strings.

Bad or missing values are replaced by defaults instead of rejected, so the
dashboard always gets a page back.
"""

from dataclasses import dataclass
from datetime import date as date_cls
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo

from firewatch.settings import S

DEFAULT_SORT = "sensor"
DEFAULT_PAGE = 1
FIRMS_MAX_DAY_RANGE = 10


class ListMode(str, Enum):
    paged = "paged"
    all = "all"


@dataclass(frozen=True)
class TimeRange:
    start: str
    end: str

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class QueryParams:
    date: str
    day_range: int
    sort: str = DEFAULT_SORT
    page: int = DEFAULT_PAGE
    limit: int = 25
    all: bool = False
    time_range: Optional[TimeRange] = None

    @property
    def mode(self) -> ListMode:
        return ListMode.all if self.all else ListMode.paged

    def fetch_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"date": self.date, "dayRange": self.day_range}
        if self.time_range is not None:
            options["timeRange"] = self.time_range.to_dict()
        return options


def parse_int(value: Any, default: int) -> int:
    """int(value) when it is a usable positive number, else ``default``."""
    try:
        v = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return v if v > 0 else default


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() == "true"


def parse_date(value: Any, today: Optional[date_cls] = None) -> str:
    try:
        return date_cls.fromisoformat(str(value).strip()[:10]).isoformat()
    except (TypeError, ValueError):
        pass
    if today is None:
        today = datetime.now(ZoneInfo(S.region_timezone)).date()
    return today.isoformat()


def parse_hhmm(value: Any) -> Optional[str]:
    s = str(value or "").strip().replace(":", "")
    if not s.isdigit() or len(s) not in (3, 4):
        return None
    s = s.zfill(4)
    hh, mm = int(s[:2]), int(s[2:])
    if hh > 23 or mm > 59:
        return None
    return f"{hh:02d}:{mm:02d}"


def parse_time_range(query: Mapping[str, Any]) -> Optional[TimeRange]:
    start = parse_hhmm(query.get("hi"))
    end = parse_hhmm(query.get("hf"))
    if start is None or end is None:
        return None
    return TimeRange(start=start, end=end)


def parse_sort(query: Mapping[str, Any]) -> str:
    return str(query.get("sort") or "").strip() or DEFAULT_SORT


def parse_query(query: Mapping[str, Any], *, today: Optional[date_cls] = None) -> QueryParams:
    day_range = min(FIRMS_MAX_DAY_RANGE, parse_int(query.get("dr"), S.default_day_range))
    return QueryParams(
        date=parse_date(query.get("dt"), today=today),
        day_range=day_range,
        sort=parse_sort(query),
        page=parse_int(query.get("page"), DEFAULT_PAGE),
        limit=parse_int(query.get("limit"), S.default_page_size),
        all=parse_bool(query.get("all")),
        time_range=parse_time_range(query),
    )
