"""Source descriptors of leaf layers."""

from dataclasses import dataclass, field
from typing import Any, Optional

from geoview_config.models.extent import normalize_epsg
from geoview_config.utils.merge import drop_none

OUTFIELD_TYPES = ("string", "number", "date", "url")


@dataclass
class OutField:
    """A queryable field of a vector layer."""

    name: str
    alias: str
    type: str = "string"

    def __post_init__(self):
        """Validate field type."""
        if self.type not in OUTFIELD_TYPES:
            raise ValueError(f"Field type must be one of {OUTFIELD_TYPES}, got {self.type}")

    def to_dict(self) -> dict:
        return {"name": self.name, "alias": self.alias, "type": self.type}

    @classmethod
    def from_dict(cls, data: dict) -> "OutField":
        return cls(name=data["name"], alias=data.get("alias") or data["name"], type=data.get("type", "string"))


@dataclass
class FeatureInfo:
    """Query capabilities and fields of a layer."""

    queryable: bool = False
    name_field: Optional[str] = None
    outfields: list[OutField] = field(default_factory=list)

    def to_dict(self) -> dict:
        return drop_none({
            "queryable": self.queryable,
            "nameField": self.name_field,
            "outfields": [f.to_dict() for f in self.outfields],
        })

    @classmethod
    def from_dict(cls, data: dict) -> "FeatureInfo":
        return cls(
            queryable=bool(data.get("queryable", False)),
            name_field=data.get("nameField"),
            outfields=[OutField.from_dict(f) for f in data.get("outfields", [])],
        )


@dataclass
class SourceDescriptor:
    """Where and how a leaf's data is read.

    ``extent`` is expressed in ``projection``; the lon/lat bounds of a leaf are
    kept on the leaf itself.
    """

    data_access_path: Optional[str] = None
    format: Optional[str] = None
    projection: Optional[int] = None
    extent: Optional[list[float]] = None
    feature_info: Optional[FeatureInfo] = None

    def __post_init__(self):
        self.projection = normalize_epsg(self.projection)
        if self.extent is not None and len(self.extent) != 4:
            raise ValueError(f"Source extent requires 4 values, got {len(self.extent)}")

    def ensure_feature_info(self) -> FeatureInfo:
        if self.feature_info is None:
            self.feature_info = FeatureInfo()
        return self.feature_info

    def to_dict(self) -> dict:
        result = drop_none({
            "dataAccessPath": self.data_access_path,
            "format": self.format,
            "projection": self.projection,
            "extent": self.extent,
        })
        if self.feature_info is not None:
            result["featureInfo"] = self.feature_info.to_dict()
        result.update(drop_none(self._extra_to_dict()))
        return result

    def _extra_to_dict(self) -> dict:
        return {}

    @classmethod
    def _extra_from_dict(cls, data: dict) -> dict:
        return {}

    @classmethod
    def from_dict(cls, data: dict | None) -> "SourceDescriptor":
        data = data or {}
        feature_info = data.get("featureInfo")
        return cls(
            data_access_path=data.get("dataAccessPath"),
            format=data.get("format"),
            projection=data.get("projection"),
            extent=data.get("extent"),
            feature_info=FeatureInfo.from_dict(feature_info) if feature_info is not None else None,
            **cls._extra_from_dict(data),
        )


@dataclass
class VectorSource(SourceDescriptor):
    """Source of a vector layer (ESRI feature, OGC, file formats)."""

    separator: Optional[str] = None  # CSV only
    table_name: Optional[str] = None  # GeoPackage only

    def _extra_to_dict(self) -> dict:
        return {"separator": self.separator, "tableName": self.table_name}

    @classmethod
    def _extra_from_dict(cls, data: dict) -> dict:
        return {"separator": data.get("separator"), "table_name": data.get("tableName")}


@dataclass
class WmsSource(SourceDescriptor):
    """Source of a WMS layer."""

    server_type: Optional[str] = None
    wms_style: Optional[str] = None

    def _extra_to_dict(self) -> dict:
        return {"serverType": self.server_type, "wmsStyle": self.wms_style}

    @classmethod
    def _extra_from_dict(cls, data: dict) -> dict:
        return {"server_type": data.get("serverType"), "wms_style": data.get("wmsStyle")}


@dataclass
class TileSource(SourceDescriptor):
    """Source of a raster or vector tile layer."""

    tile_grid: Optional[dict[str, Any]] = None
    style_url: Optional[str] = None

    def _extra_to_dict(self) -> dict:
        return {"tileGrid": self.tile_grid, "styleUrl": self.style_url}

    @classmethod
    def _extra_from_dict(cls, data: dict) -> dict:
        return {"tile_grid": data.get("tileGrid"), "style_url": data.get("styleUrl")}


# Source class per geoview layer type (others use SourceDescriptor)
SOURCE_TYPES: dict[str, type[SourceDescriptor]] = {
    "esriFeature": VectorSource,
    "GeoJSON": VectorSource,
    "GeoPackage": VectorSource,
    "ogcFeature": VectorSource,
    "ogcWfs": VectorSource,
    "KML": VectorSource,
    "WKB": VectorSource,
    "CSV": VectorSource,
    "ogcWms": WmsSource,
    "xyzTiles": TileSource,
    "vectorTiles": TileSource,
}


def source_from_dict(layer_type: str, data: dict | None) -> SourceDescriptor:
    """Build the source descriptor variant matching a layer type."""
    return SOURCE_TYPES.get(layer_type, SourceDescriptor).from_dict(data)
