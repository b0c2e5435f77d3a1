"""Summaries of vector data files: geometry type, bounds and attribute fields.

Every parser takes the raw file content and runs in the worker pool; malformed
content raises ValueError.
"""

import csv
import io
import json
import logging
import os
import sqlite3
import tempfile
from dataclasses import dataclass, field
from typing import Optional

import shapely.wkb
from shapely.errors import ShapelyError
from shapely.geometry import shape

from geoview_config.models.extent import Extent, normalize_epsg
from geoview_config.models.source import OutField

logger = logging.getLogger(__name__)

# shapely geom_type -> geoview geometry type
SHAPELY_GEOMETRY_TYPES = {
    "Point": "Point",
    "MultiPoint": "Point",
    "LineString": "LineString",
    "LinearRing": "LineString",
    "MultiLineString": "LineString",
    "Polygon": "Polygon",
    "MultiPolygon": "Polygon",
}

GPKG_GEOMETRY_TYPES = {name.upper(): value for name, value in SHAPELY_GEOMETRY_TYPES.items()}

LATITUDE_COLUMNS = ("lat", "latitude", "y")
LONGITUDE_COLUMNS = ("lon", "lng", "long", "longitude", "x")

SQLITE_NUMBER_TYPES = ("INT", "REAL", "DOUBLE", "FLOAT", "NUMERIC", "DECIMAL")
SQLITE_DATE_TYPES = ("DATE", "DATETIME", "TIMESTAMP")


@dataclass
class FeatureSummary:
    """What a vector file tells about its layer."""

    name: Optional[str] = None
    geometry_type: Optional[str] = None
    bounds: Optional[Extent] = None
    fields: list[OutField] = field(default_factory=list)
    projection: Optional[int] = None
    table_name: Optional[str] = None


def geometry_type_of(geometry) -> str | None:
    """Geoview geometry type of a shapely geometry (collections use their first member)."""
    if geometry.geom_type == "GeometryCollection":
        for member in geometry.geoms:
            return geometry_type_of(member)
        return None
    return SHAPELY_GEOMETRY_TYPES.get(geometry.geom_type)


def bounds_of(geometries, epsg: int | None = None) -> Extent | None:
    """Lon/lat extent covering non-empty geometries expressed in the given projection."""
    boxes = [g.bounds for g in geometries if not g.is_empty]
    if not boxes:
        return None
    bounds = [
        min(b[0] for b in boxes),
        min(b[1] for b in boxes),
        max(b[2] for b in boxes),
        max(b[3] for b in boxes),
    ]
    return Extent.from_projected(bounds, epsg)


def fields_from_properties(properties: dict) -> list[OutField]:
    """Outfields of a property mapping: numbers are ``number``, everything else ``string``."""
    outfields = []
    for name, value in properties.items():
        is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
        outfields.append(OutField(name=name, alias=name, type="number" if is_number else "string"))
    return outfields


def parse_geojson(data: bytes) -> FeatureSummary:
    """
    Summarize a GeoJSON document (FeatureCollection, Feature or bare geometry).

    Raises:
        ValueError: If the document is not valid GeoJSON
    """
    document = json.loads(data)
    if not isinstance(document, dict):
        raise ValueError("GeoJSON document must be an object")

    if document.get("type") == "FeatureCollection":
        features = document.get("features") or []
    elif document.get("type") == "Feature":
        features = [document]
    else:
        features = [{"type": "Feature", "geometry": document, "properties": {}}]

    try:
        geometries = [shape(f["geometry"]) for f in features if f.get("geometry")]
    except (ShapelyError, KeyError, TypeError) as e:
        raise ValueError(f"Invalid GeoJSON geometry: {e}") from e

    # Legacy named crs member; RFC 7946 documents are always lon/lat
    crs_name = ((document.get("crs") or {}).get("properties") or {}).get("name", "")
    epsg = normalize_epsg(crs_name.rsplit(":", 1)[-1]) if crs_name else None

    properties = next((f.get("properties") for f in features if f.get("properties")), {}) or {}
    return FeatureSummary(
        name=document.get("name"),
        geometry_type=next((t for t in map(geometry_type_of, geometries) if t), None),
        bounds=bounds_of(geometries, epsg),
        fields=fields_from_properties(properties),
        projection=epsg,
    )


def parse_wkb(data: bytes, epsg: int | None = None) -> FeatureSummary:
    """
    Summarize a well-known binary geometry (raw or hex encoded).

    Raises:
        ValueError: If the content is not a WKB geometry
    """
    # Only hex text may carry surrounding whitespace
    content = data.strip()
    is_hex = bool(content) and all(chr(c) in "0123456789abcdefABCDEF" for c in content)
    try:
        geometry = shapely.wkb.loads(content.decode("ascii"), hex=True) if is_hex else shapely.wkb.loads(data)
    except ShapelyError as e:
        raise ValueError(f"Invalid WKB geometry: {e}") from e

    return FeatureSummary(
        geometry_type=geometry_type_of(geometry),
        bounds=bounds_of([geometry], epsg),
        projection=epsg,
    )


def _sqlite_field_type(declared: str) -> str:
    declared = (declared or "").upper()
    if declared.startswith(SQLITE_DATE_TYPES):
        return "date"
    if any(t in declared for t in SQLITE_NUMBER_TYPES):
        return "number"
    return "string"


def _read_geopackage(connection: sqlite3.Connection, table_name: str | None) -> FeatureSummary:
    contents = connection.execute(
        "SELECT table_name, identifier, min_x, min_y, max_x, max_y, srs_id "
        "FROM gpkg_contents WHERE data_type = 'features' ORDER BY table_name"
    ).fetchall()
    if not contents:
        raise ValueError("GeoPackage has no feature tables")

    by_name = {row[0]: row for row in contents}
    if table_name is None:
        table_name = contents[0][0]
    elif table_name not in by_name:
        raise ValueError(f"GeoPackage has no feature table {table_name}. Tables: {', '.join(by_name)}")
    _, identifier, min_x, min_y, max_x, max_y, srs_id = by_name[table_name]

    geometry_row = connection.execute(
        "SELECT column_name, geometry_type_name FROM gpkg_geometry_columns WHERE table_name = ?", (table_name,)
    ).fetchone()
    geometry_column, geometry_type_name = geometry_row if geometry_row else (None, None)
    geometry_type = GPKG_GEOMETRY_TYPES.get((geometry_type_name or "").upper())

    # Table name was checked against gpkg_contents above
    columns = connection.execute(f'PRAGMA table_info("{table_name}")').fetchall()
    fields = [
        OutField(name=column[1], alias=column[1], type=_sqlite_field_type(column[2]))
        for column in columns
        if column[1] != geometry_column
    ]

    bounds = None
    epsg = normalize_epsg(srs_id) if srs_id and srs_id > 0 else None
    if None not in (min_x, min_y, max_x, max_y):
        bounds = Extent.from_projected([min_x, min_y, max_x, max_y], epsg)

    return FeatureSummary(
        name=identifier or table_name,
        geometry_type=geometry_type,
        bounds=bounds,
        fields=fields,
        projection=epsg,
        table_name=table_name,
    )


def parse_geopackage(data: bytes, table_name: str | None = None) -> FeatureSummary:
    """
    Summarize one feature table of a GeoPackage.

    Args:
        data: GeoPackage file content
        table_name: Feature table to read (first feature table if None)

    Raises:
        ValueError: If the content is not a GeoPackage or the table is missing
    """
    fd, path = tempfile.mkstemp(suffix=".gpkg")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        connection = sqlite3.connect(path)
        try:
            return _read_geopackage(connection, table_name)
        except sqlite3.DatabaseError as e:
            raise ValueError(f"Invalid GeoPackage: {e}") from e
        finally:
            connection.close()
    finally:
        os.remove(path)


def _find_column(header_map: dict[str, str], candidates) -> str | None:
    return next((header_map[c] for c in candidates if c in header_map), None)


def parse_csv(data: bytes, separator: str = ",") -> FeatureSummary:
    """
    Summarize delimited text holding one point per row.

    Latitude and longitude columns are found by name (case-insensitive). A column
    is ``number`` when every non-empty value parses as a float.

    Raises:
        ValueError: If the latitude or longitude column is missing
    """
    text = data.decode("utf-8-sig")
    reader = csv.DictReader(io.StringIO(text), delimiter=separator)
    if not reader.fieldnames:
        raise ValueError("CSV file has no header row")

    header_map = {h.lower().strip(): h for h in reader.fieldnames}
    lat_col = _find_column(header_map, LATITUDE_COLUMNS)
    lon_col = _find_column(header_map, LONGITUDE_COLUMNS)
    if not lat_col or not lon_col:
        raise ValueError(f"CSV file needs latitude and longitude columns, found: {', '.join(reader.fieldnames)}")

    lons, lats = [], []
    numeric = {name: True for name in reader.fieldnames if name not in (lat_col, lon_col)}
    for row in reader:
        try:
            lon, lat = float(row[lon_col]), float(row[lat_col])
        except (TypeError, ValueError):
            logger.debug(f"Skipping CSV row without coordinates: {row}")
            continue
        lons.append(lon)
        lats.append(lat)
        for name in numeric:
            value = (row.get(name) or "").strip()
            if value and numeric[name]:
                try:
                    float(value)
                except ValueError:
                    numeric[name] = False

    bounds = Extent(min(lons), min(lats), max(lons), max(lats)) if lons else None
    return FeatureSummary(
        geometry_type="Point",
        bounds=bounds,
        fields=[OutField(name=n, alias=n, type="number" if is_num else "string") for n, is_num in numeric.items()],
    )
