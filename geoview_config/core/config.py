"""Configuration for geoview layer types and resolution settings."""

from dataclasses import dataclass
from enum import Enum


class EntryKind(str, Enum):
    """Kind of a layer entry in the configuration tree."""

    VECTOR = "vector"
    VECTOR_TILE = "vector-tile"
    RASTER_TILE = "raster-tile"
    RASTER_IMAGE = "raster-image"
    GROUP = "group"

    @property
    def is_group(self) -> bool:
        return self is EntryKind.GROUP


@dataclass(frozen=True)
class LayerTypeInfo:
    """Static description of a supported geoview layer type.

    The leaf entry kind is fixed per layer type; groups are always EntryKind.GROUP.
    """

    name: str
    display_name: str
    entry_kind: EntryKind
    description: str
    file_extensions: tuple[str, ...] = ()


# Supported geoview layer types
LAYER_TYPES: dict[str, LayerTypeInfo] = {
    "esriDynamic": LayerTypeInfo(
        name="esriDynamic",
        display_name="ESRI Dynamic",
        entry_kind=EntryKind.RASTER_IMAGE,
        description="ArcGIS MapServer rendered server side",
    ),
    "esriFeature": LayerTypeInfo(
        name="esriFeature",
        display_name="ESRI Feature",
        entry_kind=EntryKind.VECTOR,
        description="ArcGIS FeatureServer or MapServer layer queried as features",
    ),
    "esriImage": LayerTypeInfo(
        name="esriImage",
        display_name="ESRI Image",
        entry_kind=EntryKind.RASTER_IMAGE,
        description="ArcGIS ImageServer",
    ),
    "imageStatic": LayerTypeInfo(
        name="imageStatic",
        display_name="Static Image",
        entry_kind=EntryKind.RASTER_IMAGE,
        description="Georeferenced static image",
    ),
    "GeoJSON": LayerTypeInfo(
        name="GeoJSON",
        display_name="GeoJSON",
        entry_kind=EntryKind.VECTOR,
        description="GeoJSON feature collection",
        file_extensions=(".json", ".geojson"),
    ),
    "GeoPackage": LayerTypeInfo(
        name="GeoPackage",
        display_name="GeoPackage",
        entry_kind=EntryKind.VECTOR,
        description="OGC GeoPackage feature tables",
        file_extensions=(".gpkg",),
    ),
    "xyzTiles": LayerTypeInfo(
        name="xyzTiles",
        display_name="XYZ Tiles",
        entry_kind=EntryKind.RASTER_TILE,
        description="Raster tiles addressed by {z}/{x}/{y}",
    ),
    "vectorTiles": LayerTypeInfo(
        name="vectorTiles",
        display_name="Vector Tiles",
        entry_kind=EntryKind.VECTOR_TILE,
        description="ArcGIS VectorTileServer",
    ),
    "ogcFeature": LayerTypeInfo(
        name="ogcFeature",
        display_name="OGC API Features",
        entry_kind=EntryKind.VECTOR,
        description="OGC API - Features collections",
    ),
    "ogcWfs": LayerTypeInfo(
        name="ogcWfs",
        display_name="OGC WFS",
        entry_kind=EntryKind.VECTOR,
        description="OGC Web Feature Service",
    ),
    "ogcWms": LayerTypeInfo(
        name="ogcWms",
        display_name="OGC WMS",
        entry_kind=EntryKind.RASTER_IMAGE,
        description="OGC Web Map Service",
    ),
    "KML": LayerTypeInfo(
        name="KML",
        display_name="KML",
        entry_kind=EntryKind.VECTOR,
        description="Keyhole Markup Language document",
        file_extensions=(".kml",),
    ),
    "WKB": LayerTypeInfo(
        name="WKB",
        display_name="WKB",
        entry_kind=EntryKind.VECTOR,
        description="Well-known binary geometry",
        file_extensions=(".wkb",),
    ),
    "CSV": LayerTypeInfo(
        name="CSV",
        display_name="CSV",
        entry_kind=EntryKind.VECTOR,
        description="Delimited text with latitude/longitude columns",
        file_extensions=(".csv",),
    ),
    "geoCore": LayerTypeInfo(
        name="geoCore",
        display_name="GeoCore",
        entry_kind=EntryKind.VECTOR,
        description="GeoCore record resolved to its underlying layer type",
    ),
}

# Network settings
MAX_CONCURRENT_FETCHES = 8
FETCH_TIMEOUT = 30  # seconds

# Worker pool for CPU bound parsing (XML, GeoPackage, WKB, ...)
WORKER_POOL_SIZE = 4

# Map settings
SUPPORTED_LANGUAGES = ("en", "fr")
DEFAULT_LANGUAGE = "en"
VALID_PROJECTION_CODES = (3978, 3857)
DEFAULT_MAP_PROJECTION = 3857
LONLAT_EPSG = 4326

# ESRI well-known ids that alias EPSG codes
ESRI_WKID_ALIASES = {
    102100: 3857,
    102113: 3857,
    900913: 3857,
}

GEOCORE_URL = "https://geocore.api.geo.ca"

DEFAULT_SERVICE_DATE_FORMAT = "DD/MM/YYYY HH:MM:SSZ"

DEFAULT_INITIAL_SETTINGS = {
    "controls": {
        "highlight": True,
        "hover": True,
        "opacity": True,
        "query": False,
        "remove": True,
        "table": True,
        "visibility": True,
        "zoom": True,
    },
    "states": {
        "visible": True,
        "opacity": 1,
        "hoverable": True,
        "queryable": False,
    },
}

DEFAULT_SERVICE_URLS = {
    "geocoreUrl": GEOCORE_URL,
}
