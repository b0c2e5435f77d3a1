"""Data model for geographic extents."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from geoview_config.core.config import ESRI_WKID_ALIASES, LONLAT_EPSG


@lru_cache
def _transformer_to_lonlat(epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(epsg), CRS.from_epsg(LONLAT_EPSG), always_xy=True)


def normalize_epsg(code: int | str | None) -> int | None:
    """
    Normalize an EPSG code or ESRI well-known id.

    Accepts ``3857``, ``"3857"``, ``"EPSG:3857"`` and ESRI aliases such as ``102100``.

    Returns:
        EPSG code, or None if the value is empty or not numeric
    """
    if code is None or code == "":
        return None
    if isinstance(code, str):
        code = code.upper().replace("EPSG:", "").strip()
        if not code.isdigit():
            return None
    code = int(code)
    return ESRI_WKID_ALIASES.get(code, code)


@dataclass
class Extent:
    """Geographic extent defined by lon/lat bounds (EPSG:4326)."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def is_valid(self) -> bool:
        """
        Check if extent has valid bounds.

        Returns:
            True if min values do not exceed max values and all values are in range
        """
        return (self.min_lon <= self.max_lon and
                self.min_lat <= self.max_lat and
                -180 <= self.min_lon <= 180 and
                -180 <= self.max_lon <= 180 and
                -90 <= self.min_lat <= 90 and
                -90 <= self.max_lat <= 90)

    def union(self, other: "Extent") -> "Extent":
        """Smallest extent covering both extents."""
        return Extent(
            min_lon=min(self.min_lon, other.min_lon),
            min_lat=min(self.min_lat, other.min_lat),
            max_lon=max(self.max_lon, other.max_lon),
            max_lat=max(self.max_lat, other.max_lat),
        )

    def to_list(self) -> List[float]:
        """Bounds as ``[min_lon, min_lat, max_lon, max_lat]``."""
        return [self.min_lon, self.min_lat, self.max_lon, self.max_lat]

    def to_dict(self) -> Dict[str, float]:
        """
        Convert extent to dictionary.

        Returns:
            Dictionary with min_lon, min_lat, max_lon, max_lat keys
        """
        return {
            'min_lon': self.min_lon,
            'min_lat': self.min_lat,
            'max_lon': self.max_lon,
            'max_lat': self.max_lat,
        }

    @classmethod
    def from_list(cls, bounds: List[float]) -> 'Extent':
        """
        Create extent from a ``[min_lon, min_lat, max_lon, max_lat]`` list.

        Raises:
            ValueError: If the list does not hold four numbers
        """
        if len(bounds) != 4:
            raise ValueError(f"Extent requires 4 values, got {len(bounds)}")
        min_lon, min_lat, max_lon, max_lat = (float(v) for v in bounds)
        return cls(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    @classmethod
    def from_projected(cls, bounds: List[float], epsg: int | str | None) -> 'Extent':
        """
        Create extent from bounds expressed in another projection.

        Args:
            bounds: ``[xmin, ymin, xmax, ymax]`` in the source projection
            epsg: EPSG code or ESRI wkid of the source projection (None means lon/lat)

        Returns:
            Extent in lon/lat

        Raises:
            ValueError: If the projection is unknown or the bounds are malformed
        """
        code = normalize_epsg(epsg)
        if code is None or code == LONLAT_EPSG:
            return cls.from_list(bounds)
        if len(bounds) != 4:
            raise ValueError(f"Extent requires 4 values, got {len(bounds)}")

        try:
            transformer = _transformer_to_lonlat(code)
        except CRSError as e:
            raise ValueError(f"Unknown projection EPSG:{code}: {e}") from e

        min_lon, min_lat, max_lon, max_lat = transformer.transform_bounds(*(float(v) for v in bounds))
        return cls(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    @classmethod
    def from_esri(cls, extent: dict) -> 'Extent':
        """
        Create extent from an ESRI envelope ``{xmin, ymin, xmax, ymax, spatialReference}``.

        Raises:
            ValueError: If the envelope is incomplete or its projection unknown
        """
        try:
            bounds = [extent["xmin"], extent["ymin"], extent["xmax"], extent["ymax"]]
        except KeyError as e:
            raise ValueError(f"ESRI extent is missing {e}") from e
        reference = extent.get("spatialReference") or {}
        wkid = reference.get("latestWkid") or reference.get("wkid")
        return cls.from_projected(bounds, wkid)
