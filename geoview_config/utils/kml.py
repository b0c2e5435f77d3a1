"""Utility functions for summarizing KML documents."""

import logging
import xml.etree.ElementTree as ET

from geoview_config.models.extent import Extent
from geoview_config.models.source import OutField
from geoview_config.utils.features import FeatureSummary

logger = logging.getLogger(__name__)

# KML namespace
KML_NS = {"kml": "http://www.opengis.net/kml/2.2"}

# KML geometry elements in the order they are looked for
KML_GEOMETRIES = (("Point", "Point"), ("LineString", "LineString"), ("LinearRing", "LineString"), ("Polygon", "Polygon"))


def extract_coordinates(root: ET.Element) -> list[tuple[float, float]]:
    """
    Extract all coordinate pairs from a KML document.

    Args:
        root: Root element of the KML document

    Returns:
        List of (lon, lat) tuples

    Raises:
        ValueError: If a coordinate is not numeric
    """
    coords = []

    # KML format: "lon,lat,alt lon,lat,alt ..." (space or newline separated)
    for coord_elem in root.findall(".//kml:coordinates", KML_NS):
        if coord_elem.text:
            for point in coord_elem.text.strip().split():
                parts = point.split(",")
                if len(parts) >= 2:
                    coords.append((float(parts[0]), float(parts[1])))

    return coords


def calculate_bbox(coords: list[tuple[float, float]]) -> Extent:
    """
    Calculate bounding box from coordinate list.

    Args:
        coords: List of (lon, lat) tuples

    Returns:
        Extent representing the bounding box
    """
    lons = [c[0] for c in coords]
    lats = [c[1] for c in coords]

    return Extent(
        min_lon=min(lons),
        min_lat=min(lats),
        max_lon=max(lons),
        max_lat=max(lats),
    )


def _text(elem: ET.Element | None) -> str | None:
    if elem is None or not elem.text:
        return None
    return elem.text.strip() or None


def extract_name(root: ET.Element) -> str | None:
    """
    Extract the document name.

    Uses the Document level <name>, falling back to the first Placemark's <name>.
    """
    doc_elem = root.find(".//kml:Document", KML_NS)
    if doc_elem is not None:
        name = _text(doc_elem.find("kml:name", KML_NS))
        if name:
            return name

    placemark = root.find(".//kml:Placemark", KML_NS)
    if placemark is not None:
        return _text(placemark.find("kml:name", KML_NS))
    return None


def extract_geometry_type(root: ET.Element) -> str | None:
    """Geometry type of the first placemark geometry found."""
    for placemark in root.iterfind(".//kml:Placemark", KML_NS):
        for tag, geometry_type in KML_GEOMETRIES:
            if placemark.find(f".//kml:{tag}", KML_NS) is not None:
                return geometry_type
    return None


def extract_fields(root: ET.Element) -> list[OutField]:
    """
    Attribute fields of the first placemark.

    Reads ``ExtendedData/Data`` and ``ExtendedData/SchemaData/SimpleData`` names; the
    placemark name and description are always present.
    """
    names = ["name", "description"]
    placemark = root.find(".//kml:Placemark", KML_NS)
    if placemark is not None:
        for data_elem in placemark.iterfind(".//kml:ExtendedData/kml:Data", KML_NS):
            names.append(data_elem.get("name"))
        for data_elem in placemark.iterfind(".//kml:ExtendedData/kml:SchemaData/kml:SimpleData", KML_NS):
            names.append(data_elem.get("name"))

    unique = [n for i, n in enumerate(names) if n and n not in names[:i]]
    return [OutField(name=n, alias=n, type="string") for n in unique]


def parse_kml(data: bytes) -> FeatureSummary:
    """
    Summarize a KML document.

    Args:
        data: KML document content

    Returns:
        FeatureSummary with name, geometry type, lon/lat bounds and fields

    Raises:
        ValueError: If KML is invalid or contains no coordinates
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ValueError(f"Invalid KML file: {e}") from e

    coords = extract_coordinates(root)
    if not coords:
        raise ValueError("No coordinates found in KML file")

    return FeatureSummary(
        name=extract_name(root),
        geometry_type=extract_geometry_type(root),
        bounds=calculate_bbox(coords),
        fields=extract_fields(root),
    )
