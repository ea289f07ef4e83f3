"""Attach a municipality / regional command label to every hotspot.

The boundary polygons are tried first. Only when that pass leaves at least
one record unresolved, or the polygon dataset is unusable, is the whole batch
sent to the reverse geocoder. A geocoder failure is not caught here.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from firewatch.geo.boundaries import Location, MunicipalityMatcher
from firewatch.geo.mapbox import MapboxReverseGeocoder

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


@dataclass(frozen=True)
class Resolved:
    records: List[Record]


@dataclass(frozen=True)
class Incomplete:
    reason: str
    unresolved: int = 0


PrimaryResult = Union[Resolved, Incomplete]


def with_location(fire: Record, loc: Location) -> Record:
    return {**fire, "location": loc.to_dict()}


def fire_points(fires: Sequence[Record]) -> List[Tuple[Any, Any]]:
    return [(f.get("longitude"), f.get("latitude")) for f in fires]


class LocationEnricher:
    def __init__(
        self,
        matcher: Optional[MunicipalityMatcher],
        geocoder: MapboxReverseGeocoder,
        matcher_error: Optional[str] = None,
    ):
        self.matcher = matcher
        self.geocoder = geocoder
        self.matcher_error = matcher_error

    def locate_by_boundaries(self, fires: Sequence[Record]) -> PrimaryResult:
        if self.matcher is None:
            return Incomplete(reason=self.matcher_error or "boundary dataset not loaded")
        try:
            locations = self.matcher.batch_locate(fire_points(fires))
        except Exception as exc:
            return Incomplete(reason=f"boundary lookup failed: {exc}")

        located = [with_location(f, loc) for f, loc in zip(fires, locations)]
        unresolved = sum(1 for loc in locations if not loc.resolved)
        logger.info("Boundary pass applied. %s hotspots without a municipality match.", unresolved)
        if unresolved:
            return Incomplete(reason="boundary pass incomplete", unresolved=unresolved)
        return Resolved(records=located)

    async def add_location_data(self, fires: Sequence[Record]) -> List[Record]:
        logger.info("Locating %s hotspots...", len(fires))

        primary = self.locate_by_boundaries(fires)
        if isinstance(primary, Resolved):
            logger.info("All hotspots located via boundary polygons.")
            return primary.records

        logger.warning(
            "Falling back to reverse geocoding (%s, %s unresolved).", primary.reason, primary.unresolved
        )
        locations = await self.geocoder.batch_geocode(fire_points(fires))
        unresolved = sum(1 for loc in locations if not loc.resolved)
        logger.info("Reverse geocoding applied. %s hotspots still without a municipality.", unresolved)
        return [with_location(f, loc) for f, loc in zip(fires, locations)]
