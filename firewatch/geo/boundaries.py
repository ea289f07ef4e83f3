import json
import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shapely.geometry import Point, shape
from shapely.strtree import STRtree

from firewatch.errors import BoundaryDatasetError

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class Location:
    municipality: str = NOT_AVAILABLE
    regional_command: str = NOT_AVAILABLE

    @property
    def resolved(self) -> bool:
        return bool(self.municipality) and self.municipality != NOT_AVAILABLE

    def to_dict(self) -> Dict[str, str]:
        municipality = self.municipality or NOT_AVAILABLE
        return {
            "municipality": municipality,
            "regionalCommand": self.regional_command or NOT_AVAILABLE,
            # older dashboards read "city"
            "city": municipality,
        }


UNRESOLVED = Location()


def valid_point(lon: Any, lat: Any) -> Optional[Tuple[float, float]]:
    try:
        x, y = float(lon), float(lat)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return x, y


class MunicipalityMatcher:
    """Point-in-polygon lookup against municipality boundaries.

    Each polygon carries the municipality name and the regional command it
    belongs to. The geometries are read-only after load, so one matcher is
    shared by every request.
    """

    def __init__(self, geometries: Sequence[Any], locations: Sequence[Location]):
        if len(geometries) != len(locations):
            raise ValueError("geometries and locations must have the same length")
        self._geoms = list(geometries)
        self._locations = list(locations)
        self._tree = STRtree(self._geoms)

    @classmethod
    def from_geojson(
        cls,
        path: str,
        name_fields: Sequence[str] = ("name", "NM_MUN", "municipio"),
        region_field: str = "comandoRegional",
    ) -> "MunicipalityMatcher":
        if not os.path.exists(path):
            raise BoundaryDatasetError(f"Boundary dataset not found at {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise BoundaryDatasetError(f"Boundary dataset at {path} is not valid GeoJSON: {e}") from e
        try:
            return cls.from_features(data, name_fields=name_fields, region_field=region_field)
        except (AttributeError, TypeError, ValueError) as e:
            raise BoundaryDatasetError(f"Boundary dataset at {path} could not be parsed: {e}") from e

    @classmethod
    def from_features(
        cls,
        data: Dict[str, Any],
        name_fields: Sequence[str] = ("name", "NM_MUN", "municipio"),
        region_field: str = "comandoRegional",
    ) -> "MunicipalityMatcher":
        features = data.get("features") if isinstance(data, dict) else None
        if not isinstance(features, list):
            raise BoundaryDatasetError("Boundary dataset has no 'features' list")

        geoms: List[Any] = []
        locations: List[Location] = []
        skipped = 0
        for feat in features:
            if not isinstance(feat, dict):
                skipped += 1
                continue
            geom = feat.get("geometry")
            props = feat.get("properties") or {}
            if not isinstance(geom, dict) or not isinstance(props, dict):
                skipped += 1
                continue
            if geom.get("type") not in ("Polygon", "MultiPolygon"):
                skipped += 1
                continue
            try:
                g = shape(geom)
            except Exception:
                skipped += 1
                continue
            if g.is_empty:
                skipped += 1
                continue
            name = next((str(props[k]).strip() for k in name_fields if props.get(k)), NOT_AVAILABLE)
            region = str(props.get(region_field) or "").strip() or NOT_AVAILABLE
            geoms.append(g)
            locations.append(Location(municipality=name, regional_command=region))

        if not geoms:
            raise BoundaryDatasetError("Boundary dataset contains no polygons")
        if skipped:
            logger.warning("Skipped %s boundary features without a usable polygon", skipped)
        logger.info("Loaded %s boundary polygons", len(geoms))
        return cls(geoms, locations)

    def __len__(self) -> int:
        return len(self._geoms)

    def locate(self, lon: Any, lat: Any) -> Location:
        pt = valid_point(lon, lat)
        if pt is None:
            return UNRESOLVED
        # intersects keeps points lying exactly on a shared border
        hits = self._tree.query(Point(pt), predicate="intersects")
        if len(hits) == 0:
            return UNRESOLVED
        return self._locations[int(min(hits))]

    def batch_locate(self, points: Sequence[Tuple[Any, Any]]) -> List[Location]:
        """Locate (lon, lat) pairs in one synchronous pass."""
        return [self.locate(lon, lat) for lon, lat in points]
