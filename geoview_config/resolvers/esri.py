"""Resolver for ArcGIS REST services (esriDynamic, esriFeature, esriImage)."""

import logging
import re
from typing import TYPE_CHECKING

from geoview_config.core.exceptions import (
    EmptyLayerGroupError,
    ServiceMetadataError,
    UnsupportedGeometryTypeError,
)
from geoview_config.core.fetcher import FetchResult
from geoview_config.models.extent import Extent
from geoview_config.models.nodes import ConfigNode, GroupLayerConfig, LeafLayerConfig, generate_id
from geoview_config.models.source import OutField
from geoview_config.models.time_dimension import TimeDimension
from geoview_config.resolvers.base import LayerResolver
from geoview_config.resolvers.esri_renderer import parse_renderer
from geoview_config.utils.localized import normalize_localized
from geoview_config.utils.urls import join_path, split_query, with_query

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

logger = logging.getLogger(__name__)

GEOMETRY_TYPES = {
    "esriGeometryPoint": "Point",
    "esriGeometryMultipoint": "Point",
    "esriGeometryPolyline": "LineString",
    "esriGeometryPolygon": "Polygon",
    "esriGeometryMultiPolygon": "Polygon",
}

FIELD_TYPES = {
    "esriFieldTypeDate": "date",
    "esriFieldTypeDouble": "number",
    "esriFieldTypeInteger": "number",
    "esriFieldTypeSingle": "number",
    "esriFieldTypeSmallInteger": "number",
    "esriFieldTypeOID": "number",
}

GROUP_LAYER_TYPE = "Group Layer"

# Feature layer URL ending with its layer index, e.g. .../FeatureServer/3
LAYER_INDEX_PATTERN = re.compile(r"^(?P<service>.+/(?:FeatureServer|MapServer))/(?P<index>\d+)/?$", re.IGNORECASE)


def convert_geometry_type(esri_geometry_type: str | None) -> str:
    """
    Map an ESRI geometry type to a geoview geometry type.

    Raises:
        UnsupportedGeometryTypeError: For any other geometry type
    """
    if esri_geometry_type not in GEOMETRY_TYPES:
        raise UnsupportedGeometryTypeError(
            f"Unsupported geometry type: {esri_geometry_type}", params=[esri_geometry_type]
        )
    return GEOMETRY_TYPES[esri_geometry_type]


def convert_fields(fields: list[dict]) -> list[OutField]:
    """Convert ESRI fields to outfields, skipping the geometry field."""
    outfields = []
    for field in fields:
        if field.get("type") == "esriFieldTypeGeometry":
            continue
        outfields.append(
            OutField(
                name=field["name"],
                alias=field.get("alias") or field["name"],
                type=FIELD_TYPES.get(field.get("type"), "string"),
            )
        )
    return outfields


class EsriResolver(LayerResolver):
    """Resolver for MapServer, FeatureServer and ImageServer endpoints."""

    @property
    def is_image(self) -> bool:
        return self.info.name == "esriImage"

    @property
    def validates_entry_ids(self) -> bool:
        return not self.is_image

    def normalize(self, root: "GeoviewLayerConfig") -> None:
        """Split a layer URL (``.../FeatureServer/3``) into the service URL and one entry."""
        base, _ = split_query(root.metadata_access_path)
        match = LAYER_INDEX_PATTERN.match(base)
        if match is None:
            return
        root.metadata_access_path = match.group("service")
        if root.entries_config is None:
            root.entries_config = [{"layerId": match.group("index")}]

    async def fetch_service_metadata(self, root: "GeoviewLayerConfig") -> FetchResult:
        url = with_query(root.metadata_access_path, f="json")
        return await root.context.client.fetch_json(url)

    def synthesize_tree(self, root: "GeoviewLayerConfig") -> list[ConfigNode]:
        """
        Build the layer tree from the service ``layers`` list.

        A single layer gives a single leaf. Otherwise layers are partitioned by
        ``parentLayerId``; "Group Layer" records become groups and any synthesized
        group holding exactly one child is replaced by that child.
        """
        metadata = root.get_service_metadata()

        if self.is_image:
            name = metadata.get("name") or root.geoview_layer_id
            return [self.create_leaf(name, layer_name=name)]

        layers = metadata.get("layers") or []
        if not layers:
            raise EmptyLayerGroupError(
                f"Service {root.metadata_access_path} has no layers", params=[root.metadata_access_path]
            )

        if len(layers) == 1:
            return [self._create_leaf_node(layers[0])]

        map_name = metadata.get("mapName") or metadata.get("documentInfo", {}).get("Title")
        return [self._create_group_node(layers, -1, map_name or root.geoview_layer_name or None)]

    def _create_group_node(self, layers: list[dict], parent_id: int, layer_name, layer_id=None) -> ConfigNode:
        group = GroupLayerConfig(layer_id if layer_id is not None else generate_id(), layer_name=layer_name,
                                 is_metadata_layer_group=True)
        for record in layers:
            if record.get("parentLayerId", -1) != parent_id:
                continue
            if record.get("type") == GROUP_LAYER_TYPE:
                child = self._create_group_node(layers, record["id"], record.get("name"), layer_id=record["id"])
            else:
                child = self._create_leaf_node(record)
            group.add_child(child)

        if len(group.children) == 1:
            child = group.children[0]
            group.remove_child(child)
            return child
        return group

    def _create_leaf_node(self, record: dict) -> LeafLayerConfig:
        return self.create_leaf(
            record["id"],
            layer_name=record.get("name"),
            geometry_type=convert_geometry_type(record.get("geometryType")),
        )

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        if self.is_image:
            metadata = root.get_service_metadata()
        else:
            url = with_query(join_path(root.metadata_access_path, leaf.layer_id), f="pjson")
            metadata = (await root.context.client.fetch_json(url)).unwrap()

        if not isinstance(metadata, dict):
            raise ServiceMetadataError(f"Invalid layer metadata for {leaf.describe()}", params=[leaf.describe()])

        leaf.layer_metadata = metadata
        self.apply_layer_metadata(root, leaf, metadata)

    def apply_layer_metadata(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig, metadata: dict) -> None:
        """
        Merge one layer's metadata into its leaf.

        Values already configured on the leaf are kept.
        """
        if not leaf.layer_name and metadata.get("name"):
            leaf.layer_name = normalize_localized(metadata["name"])

        if leaf.geometry_type is None and metadata.get("geometryType"):
            leaf.geometry_type = convert_geometry_type(metadata["geometryType"])

        if leaf.min_scale is None and metadata.get("minScale"):
            leaf.min_scale = metadata["minScale"]
        if leaf.max_scale is None and metadata.get("maxScale"):
            leaf.max_scale = metadata["maxScale"]

        if leaf.bounds is None and metadata.get("extent"):
            try:
                leaf.bounds = Extent.from_esri(metadata["extent"])
            except ValueError as e:
                logger.warning(f"Ignoring extent of {leaf.describe()}: {e}")

        queryable = "Query" in (metadata.get("capabilities") or "")
        states = {"queryable": queryable}
        if "defaultVisibility" in metadata:
            states["visible"] = bool(metadata["defaultVisibility"])
        leaf.apply_metadata_settings({"states": states})

        if metadata.get("copyrightText") and not leaf.attributions:
            leaf.attributions = [metadata["copyrightText"]]

        fields = metadata.get("fields") or []
        feature_info = leaf.source.ensure_feature_info()
        feature_info.queryable = queryable
        if not feature_info.outfields:
            feature_info.outfields = convert_fields(fields)
        if feature_info.name_field is None:
            feature_info.name_field = metadata.get("displayField") or (
                feature_info.outfields[0].name if feature_info.outfields else None
            )

        if root.is_time_aware and leaf.temporal_dimension is None and metadata.get("timeInfo"):
            try:
                leaf.temporal_dimension = TimeDimension.from_esri_time_info(
                    metadata["timeInfo"], single_handle=self.is_image
                )
            except ValueError as e:
                logger.warning(f"Ignoring time info of {leaf.describe()}: {e}")

        renderer = (metadata.get("drawingInfo") or {}).get("renderer")
        if leaf.layer_style is None and renderer and leaf.geometry_type is not None:
            leaf.layer_style = parse_renderer(renderer, leaf.geometry_type)
