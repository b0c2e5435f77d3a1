"""Resolver for OGC API - Features services."""

import logging
import re
from typing import TYPE_CHECKING

from geoview_config.core.exceptions import EmptyLayerGroupError, LayerIdNotFoundError
from geoview_config.core.fetcher import FetchResult
from geoview_config.models.extent import Extent
from geoview_config.models.nodes import ConfigNode, GroupLayerConfig, LeafLayerConfig
from geoview_config.models.source import OutField
from geoview_config.resolvers.base import LayerResolver
from geoview_config.utils.localized import normalize_localized
from geoview_config.utils.urls import join_path, split_query, with_query

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

logger = logging.getLogger(__name__)

# Service URL optionally followed by /collections[/{collectionId}[/items]]
COLLECTIONS_PATTERN = re.compile(r"^(?P<service>.+?)/collections(?:/(?P<collection>[^/]+))?(?:/items)?/?$")

QUERYABLE_GEOMETRY_FORMATS = {
    "geometry-point": "Point",
    "geometry-multipoint": "Point",
    "geometry-linestring": "LineString",
    "geometry-multilinestring": "LineString",
    "geometry-polygon": "Polygon",
    "geometry-multipolygon": "Polygon",
}


def parse_queryables(queryables: dict) -> tuple[list[OutField], str | None]:
    """
    Read attribute fields and the geometry type from a queryables document.

    Args:
        queryables: JSON schema returned by ``collections/{id}/queryables``

    Returns:
        Tuple of (outfields, geometry type or None)
    """
    outfields = []
    geometry_type = None
    for name, definition in (queryables.get("properties") or {}).items():
        definition = definition or {}
        value_format = definition.get("format") or ""
        if value_format.startswith("geometry-") or "$ref" in definition:
            geometry_type = geometry_type or QUERYABLE_GEOMETRY_FORMATS.get(value_format)
            continue

        value_type = definition.get("type")
        if value_type in ("integer", "number"):
            field_type = "number"
        elif value_format in ("date", "date-time"):
            field_type = "date"
        elif value_format == "uri":
            field_type = "url"
        else:
            field_type = "string"
        outfields.append(OutField(name=name, alias=definition.get("title") or name, type=field_type))
    return outfields, geometry_type


class OgcFeatureResolver(LayerResolver):
    """Resolver reading the ``collections`` endpoint of an OGC API - Features service."""

    validates_entry_ids = True

    def normalize(self, root: "GeoviewLayerConfig") -> None:
        """Reduce a collection or items URL to the service URL and one entry."""
        base, _ = split_query(root.metadata_access_path)
        match = COLLECTIONS_PATTERN.match(base)
        if match is None:
            root.metadata_access_path = base.rstrip("/")
            return
        root.metadata_access_path = match.group("service")
        if match.group("collection") and root.entries_config is None:
            root.entries_config = [{"layerId": match.group("collection")}]

    async def fetch_service_metadata(self, root: "GeoviewLayerConfig") -> FetchResult:
        url = with_query(join_path(root.metadata_access_path, "collections"), f="json")
        return await root.context.client.fetch_json(url)

    def _collections(self, root: "GeoviewLayerConfig") -> list[dict]:
        collections = root.get_service_metadata().get("collections") or []
        return [c for c in collections if isinstance(c, dict) and c.get("id")]

    def synthesize_tree(self, root: "GeoviewLayerConfig") -> list[ConfigNode]:
        collections = self._collections(root)
        if not collections:
            raise EmptyLayerGroupError(
                f"Service {root.metadata_access_path} has no collections", params=[root.metadata_access_path]
            )

        leaves = [self.create_leaf(c["id"], layer_name=c.get("title")) for c in collections]
        if len(leaves) == 1:
            return leaves

        group = GroupLayerConfig(root.geoview_layer_id, layer_name=root.geoview_layer_name or None,
                                 is_metadata_layer_group=True)
        for leaf in leaves:
            group.add_child(leaf)
        return [group]

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        collection = next((c for c in self._collections(root) if str(c["id"]) == leaf.layer_id), None)
        if collection is None:
            raise LayerIdNotFoundError(
                f"Collection {leaf.layer_id} not found in {root.metadata_access_path}", params=[leaf.describe()]
            )
        leaf.layer_metadata = collection

        if not leaf.layer_name and collection.get("title"):
            leaf.layer_name = normalize_localized(collection["title"])

        bbox = ((collection.get("extent") or {}).get("spatial") or {}).get("bbox") or []
        if leaf.bounds is None and bbox:
            # Only the first box is the overall extent; it may be 3D
            box = bbox[0]
            leaf.bounds = Extent.from_list([box[0], box[1], box[3], box[4]] if len(box) == 6 else box)

        url = with_query(join_path(root.metadata_access_path, "collections", leaf.layer_id, "queryables"), f="json")
        queryables = (await root.context.client.fetch_json(url)).unwrap()
        outfields, geometry_type = parse_queryables(queryables)
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
            leaf.source.data_access_path = join_path(root.metadata_access_path, "collections", leaf.layer_id, "items")
