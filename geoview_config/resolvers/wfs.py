"""Resolver for OGC Web Feature Services."""

import logging
from typing import TYPE_CHECKING

from geoview_config.core.exceptions import EmptyLayerGroupError, LayerIdNotFoundError
from geoview_config.core.fetcher import FetchResult
from geoview_config.models.extent import Extent
from geoview_config.models.nodes import ConfigNode, GroupLayerConfig, LeafLayerConfig
from geoview_config.models.source import OutField
from geoview_config.resolvers.base import LayerResolver
from geoview_config.utils.localized import normalize_localized
from geoview_config.utils.urls import query_param, strip_query_params, with_query
from geoview_config.utils.xml_json import as_list, text_of

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

logger = logging.getLogger(__name__)

DEFAULT_WFS_VERSION = "2.0.0"

OGC_PARAMS = ("service", "request", "typename", "typenames", "outputformat", "count", "maxfeatures")

NUMBER_TYPES = {
    "byte", "decimal", "double", "float", "int", "integer", "long", "negativeInteger", "nonNegativeInteger",
    "nonPositiveInteger", "positiveInteger", "short", "unsignedByte", "unsignedInt", "unsignedLong", "unsignedShort",
}
DATE_TYPES = {"date", "dateTime", "time"}

# GML property types of geometry columns
GML_GEOMETRY_TYPES = {
    "PointPropertyType": "Point",
    "MultiPointPropertyType": "Point",
    "LineStringPropertyType": "LineString",
    "MultiLineStringPropertyType": "LineString",
    "CurvePropertyType": "LineString",
    "MultiCurvePropertyType": "LineString",
    "PolygonPropertyType": "Polygon",
    "MultiPolygonPropertyType": "Polygon",
    "SurfacePropertyType": "Polygon",
    "MultiSurfacePropertyType": "Polygon",
}


def _local_type(type_name: str) -> str:
    return type_name.rsplit(":", 1)[-1]


def iter_sequence_elements(node):
    """Yield the ``element`` declarations found inside every ``sequence`` of an XML schema."""
    if isinstance(node, list):
        for item in node:
            yield from iter_sequence_elements(item)
    elif isinstance(node, dict):
        for key, value in node.items():
            if key == "sequence":
                for sequence in as_list(value):
                    if isinstance(sequence, dict):
                        yield from (e for e in as_list(sequence.get("element")) if isinstance(e, dict))
            else:
                yield from iter_sequence_elements(value)


def parse_feature_type_schema(schema: dict) -> tuple[list[OutField], str | None]:
    """
    Read attribute fields and the geometry type from a DescribeFeatureType schema.

    Args:
        schema: Converted XML schema document

    Returns:
        Tuple of (outfields, geometry type or None)
    """
    outfields = []
    geometry_type = None
    for element in iter_sequence_elements(schema):
        name = element.get("name")
        type_name = _local_type(element.get("type", "string"))
        if not name:
            continue
        if type_name.endswith("PropertyType"):
            geometry_type = geometry_type or GML_GEOMETRY_TYPES.get(type_name)
            continue
        if type_name in NUMBER_TYPES:
            field_type = "number"
        elif type_name in DATE_TYPES:
            field_type = "date"
        else:
            field_type = "string"
        outfields.append(OutField(name=name, alias=name, type=field_type))
    return outfields, geometry_type


def _corner(value) -> list[float]:
    return [float(v) for v in (text_of(value) or "").split()]


class WfsResolver(LayerResolver):
    """Resolver reading WFS GetCapabilities and DescribeFeatureType documents."""

    validates_entry_ids = True

    def normalize(self, root: "GeoviewLayerConfig") -> None:
        """Remove request parameters; an explicit ``version`` is kept."""
        root.metadata_access_path = strip_query_params(root.metadata_access_path, OGC_PARAMS)

    def _request_url(self, root: "GeoviewLayerConfig", request: str, **params) -> str:
        version = query_param(root.metadata_access_path, "version", DEFAULT_WFS_VERSION)
        base = strip_query_params(root.metadata_access_path, ("version",))
        return with_query(base, service="WFS", version=version, request=request, **params)

    async def fetch_service_metadata(self, root: "GeoviewLayerConfig") -> FetchResult:
        return await self.fetch_xml(root, self._request_url(root, "GetCapabilities"))

    def _feature_types(self, root: "GeoviewLayerConfig") -> list[dict]:
        feature_type_list = root.get_service_metadata().get("FeatureTypeList") or {}
        return [ft for ft in as_list(feature_type_list.get("FeatureType")) if isinstance(ft, dict)]

    def synthesize_tree(self, root: "GeoviewLayerConfig") -> list[ConfigNode]:
        """
        One feature type gives a single leaf; several are grouped under the geoview layer id.
        """
        feature_types = [ft for ft in self._feature_types(root) if text_of(ft.get("Name"))]
        if not feature_types:
            raise EmptyLayerGroupError(
                f"Service {root.metadata_access_path} has no feature types", params=[root.metadata_access_path]
            )

        leaves = [self.create_leaf(text_of(ft["Name"]), layer_name=text_of(ft.get("Title"))) for ft in feature_types]
        if len(leaves) == 1:
            return leaves

        group = GroupLayerConfig(root.geoview_layer_id, layer_name=root.geoview_layer_name or None,
                                 is_metadata_layer_group=True)
        for leaf in leaves:
            group.add_child(leaf)
        return [group]

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        feature_type = next(
            (ft for ft in self._feature_types(root) if text_of(ft.get("Name")) == leaf.layer_id), None
        )
        if feature_type is None:
            raise LayerIdNotFoundError(
                f"Feature type {leaf.layer_id} not found in the capabilities of {root.metadata_access_path}",
                params=[leaf.describe()],
            )
        leaf.layer_metadata = feature_type

        if not leaf.layer_name and feature_type.get("Title"):
            leaf.layer_name = normalize_localized(text_of(feature_type["Title"]))

        bbox = feature_type.get("WGS84BoundingBox")
        if leaf.bounds is None and isinstance(bbox, dict):
            leaf.bounds = Extent.from_list(_corner(bbox.get("LowerCorner")) + _corner(bbox.get("UpperCorner")))

        version = query_param(root.metadata_access_path, "version", DEFAULT_WFS_VERSION)
        type_param = "typeNames" if version.startswith("2") else "typeName"
        url = self._request_url(root, "DescribeFeatureType", **{type_param: leaf.layer_id})
        schema = (await self.fetch_xml(root, url)).unwrap()

        outfields, geometry_type = parse_feature_type_schema(schema)
        if leaf.geometry_type is None:
            leaf.geometry_type = geometry_type

        feature_info = leaf.source.ensure_feature_info()
        feature_info.queryable = True
        if not feature_info.outfields:
            feature_info.outfields = outfields
        if feature_info.name_field is None and feature_info.outfields:
            feature_info.name_field = feature_info.outfields[0].name
        leaf.apply_metadata_settings({"states": {"queryable": True}})

        if leaf.source.data_access_path is None:
            leaf.source.data_access_path = root.metadata_access_path
