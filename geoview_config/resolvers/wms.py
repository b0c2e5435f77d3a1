"""Resolver for OGC Web Map Services."""

import copy
import logging
from typing import TYPE_CHECKING

from geoview_config.core.exceptions import EmptyLayerGroupError, LayerIdNotFoundError
from geoview_config.core.fetcher import FetchResult
from geoview_config.models.extent import Extent
from geoview_config.models.nodes import ConfigNode, GroupLayerConfig, LeafLayerConfig, generate_id
from geoview_config.models.source import WmsSource
from geoview_config.models.time_dimension import TimeDimension
from geoview_config.resolvers.base import LayerResolver
from geoview_config.utils.localized import normalize_localized
from geoview_config.utils.urls import strip_query_params, with_query
from geoview_config.utils.xml_json import as_list, text_of

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

logger = logging.getLogger(__name__)

WMS_VERSION = "1.3.0"

# Request parameters removed from a user supplied URL
OGC_PARAMS = ("service", "request", "version", "layers", "styles", "format", "crs", "srs", "bbox", "width", "height")

# Layer properties a child takes from its parent unless it defines them
REPLACED_PROPERTIES = (
    "EX_GeographicBoundingBox",
    "queryable",
    "cascaded",
    "opaque",
    "noSubsets",
    "fixedWidth",
    "fixedHeight",
    "Attribution",
    "MinScaleDenominator",
    "MaxScaleDenominator",
)

# Layer properties a child adds to those of its parent
ADDED_PROPERTIES = ("BoundingBox", "Style", "CRS")

GEOGRAPHIC_BOUNDS = ("westBoundLongitude", "southBoundLatitude", "eastBoundLongitude", "northBoundLatitude")


def inherit_layer_properties(layer: dict, parent: dict | None = None) -> None:
    """
    Apply WMS property inheritance to a capabilities layer and its sublayers, in place.

    Args:
        layer: Converted capabilities Layer element
        parent: Converted parent Layer element, already processed
    """
    if parent is not None:
        for key in REPLACED_PROPERTIES:
            if key not in layer and key in parent:
                layer[key] = copy.deepcopy(parent[key])

        for key in ADDED_PROPERTIES:
            if key not in parent:
                continue
            merged = copy.deepcopy(as_list(parent[key]))
            for item in as_list(layer.get(key)):
                if item not in merged:
                    merged.append(item)
            layer[key] = merged

        dimensions = [d for d in as_list(layer.get("Dimension")) if isinstance(d, dict)]
        names = {d.get("name") for d in dimensions}
        inherited = [
            copy.deepcopy(d) for d in as_list(parent.get("Dimension")) if isinstance(d, dict) and d.get("name") not in names
        ]
        if inherited:
            layer["Dimension"] = dimensions + inherited

    for child in as_list(layer.get("Layer")):
        if isinstance(child, dict):
            inherit_layer_properties(child, layer)


def find_capability_layer(layers, name: str) -> dict | None:
    """Find a capabilities layer by Name, depth first."""
    for layer in as_list(layers):
        if not isinstance(layer, dict):
            continue
        if text_of(layer.get("Name")) == name:
            return layer
        found = find_capability_layer(layer.get("Layer"), name)
        if found is not None:
            return found
    return None


def _is_true(value) -> bool:
    return str(value).strip().lower() in ("1", "true")


class WmsResolver(LayerResolver):
    """Resolver reading a WMS 1.3.0 GetCapabilities document."""

    validates_entry_ids = True

    def normalize(self, root: "GeoviewLayerConfig") -> None:
        """Remove request parameters; vendor parameters such as ``map`` are kept."""
        root.metadata_access_path = strip_query_params(root.metadata_access_path, OGC_PARAMS)

    async def fetch_service_metadata(self, root: "GeoviewLayerConfig") -> FetchResult:
        url = with_query(root.metadata_access_path, service="WMS", version=WMS_VERSION, request="GetCapabilities")
        result = await self.fetch_xml(root, url)
        if result.ok:
            capability_layer = (result.data.get("Capability") or {}).get("Layer")
            for layer in as_list(capability_layer):
                if isinstance(layer, dict):
                    inherit_layer_properties(layer)
        return result

    def _capability_layers(self, root: "GeoviewLayerConfig") -> list:
        capability = root.get_service_metadata().get("Capability") or {}
        return [layer for layer in as_list(capability.get("Layer")) if isinstance(layer, dict)]

    def synthesize_tree(self, root: "GeoviewLayerConfig") -> list[ConfigNode]:
        """
        Build the layer tree from the capabilities Layer hierarchy.

        A Layer holding sublayers becomes a group; any other named Layer becomes a leaf.
        """
        layers = self._capability_layers(root)
        if not layers:
            raise EmptyLayerGroupError(
                f"Service {root.metadata_access_path} has no layers", params=[root.metadata_access_path]
            )
        return self._create_nodes(layers)

    def _create_nodes(self, layers: list) -> list[ConfigNode]:
        nodes: list[ConfigNode] = []
        taken: set[str] = set()
        for layer in layers:
            node = self._create_node(layer, taken)
            if node is not None:
                taken.add(node.layer_id)
                nodes.append(node)
        return nodes

    def _create_node(self, layer: dict, taken: set[str]) -> ConfigNode | None:
        name = text_of(layer.get("Name"))
        title = text_of(layer.get("Title"))
        sublayers = [child for child in as_list(layer.get("Layer")) if isinstance(child, dict)]

        if not sublayers:
            if not name:
                logger.debug(f"Skipping unnamed WMS layer {title}")
                return None
            return self.create_leaf(name, layer_name=title)

        # Unnamed groups fall back to their title unless a sibling already uses it
        layer_id = name or (title if title and title not in taken else generate_id())
        group = GroupLayerConfig(layer_id, layer_name=title, is_metadata_layer_group=True)
        for child in self._create_nodes(sublayers):
            group.add_child(child)
        return group

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        layer = find_capability_layer(self._capability_layers(root), leaf.layer_id)
        if layer is None:
            raise LayerIdNotFoundError(
                f"Layer {leaf.layer_id} not found in the capabilities of {root.metadata_access_path}",
                params=[leaf.describe()],
            )
        leaf.layer_metadata = layer

        if not leaf.layer_name and layer.get("Title"):
            leaf.layer_name = normalize_localized(text_of(layer["Title"]))

        queryable = _is_true(layer.get("queryable", "0"))
        leaf.apply_metadata_settings({"states": {"queryable": queryable}})
        leaf.source.ensure_feature_info().queryable = queryable
        if leaf.source.data_access_path is None:
            leaf.source.data_access_path = root.metadata_access_path

        bbox = layer.get("EX_GeographicBoundingBox")
        if leaf.bounds is None and isinstance(bbox, dict):
            corners = [text_of(bbox.get(key)) for key in GEOGRAPHIC_BOUNDS]
            if None not in corners:
                leaf.bounds = Extent.from_list(corners)

        attribution = layer.get("Attribution")
        if isinstance(attribution, dict) and attribution.get("Title") and not leaf.attributions:
            leaf.attributions = [text_of(attribution["Title"])]

        # Largest scale denominator is the most zoomed out limit
        if leaf.min_scale is None and layer.get("MaxScaleDenominator"):
            leaf.min_scale = float(text_of(layer["MaxScaleDenominator"]))
        if leaf.max_scale is None and layer.get("MinScaleDenominator"):
            leaf.max_scale = float(text_of(layer["MinScaleDenominator"]))

        if root.is_time_aware and leaf.temporal_dimension is None:
            for dimension in as_list(layer.get("Dimension")):
                if isinstance(dimension, dict) and str(dimension.get("name", "")).lower() == "time":
                    try:
                        leaf.temporal_dimension = TimeDimension.from_wms_dimension(dimension)
                    except ValueError as e:
                        logger.warning(f"Ignoring time dimension of {leaf.describe()}: {e}")
                    break

        styles = [style for style in as_list(layer.get("Style")) if isinstance(style, dict) and style.get("Name")]
        if styles and isinstance(leaf.source, WmsSource) and leaf.source.wms_style is None:
            leaf.source.wms_style = text_of(styles[0]["Name"])
