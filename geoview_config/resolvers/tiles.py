"""Resolvers for tiled layers: ESRI vector tile services and XYZ raster tiles."""

import logging
import re
from typing import TYPE_CHECKING

from geoview_config.core.exceptions import ProjectionMismatchError
from geoview_config.core.fetcher import FetchResult
from geoview_config.models.extent import Extent, normalize_epsg
from geoview_config.models.nodes import ConfigNode, LeafLayerConfig
from geoview_config.models.source import TileSource
from geoview_config.resolvers.base import LayerResolver
from geoview_config.utils.localized import normalize_localized
from geoview_config.utils.urls import join_path, split_query, with_query

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

logger = logging.getLogger(__name__)

# Tile template appended to a VectorTileServer URL
TILE_TEMPLATE_PATTERN = re.compile(r"/tile/\{z\}/\{y\}/\{x\}(\.pbf)?/?$")

VECTOR_TILE_TEMPLATE = "tile/{z}/{y}/{x}.pbf"
RASTER_TILE_TEMPLATE = "tile/{z}/{y}/{x}"


def tile_grid_from_tile_info(tile_info: dict, full_extent: dict | None = None) -> dict:
    """
    Build a tile grid from an ESRI ``tileInfo`` object.

    Returns:
        Dictionary with origin, resolutions, tileSize and, when known, extent
    """
    origin = tile_info.get("origin") or {}
    grid = {
        "origin": [origin.get("x"), origin.get("y")],
        "resolutions": [lod["resolution"] for lod in tile_info.get("lods") or [] if "resolution" in lod],
        "tileSize": [tile_info.get("cols", 256), tile_info.get("rows", 256)],
    }
    if full_extent:
        grid["extent"] = [full_extent.get("xmin"), full_extent.get("ymin"), full_extent.get("xmax"), full_extent.get("ymax")]
    return grid


def _wkid(spatial_reference: dict | None) -> int | None:
    spatial_reference = spatial_reference or {}
    return normalize_epsg(spatial_reference.get("latestWkid") or spatial_reference.get("wkid"))


def apply_tile_metadata(leaf: LeafLayerConfig, metadata: dict) -> None:
    """Fill a tile leaf's grid, projection, extent and bounds from ESRI tile service metadata."""
    tile_info = metadata.get("tileInfo") or {}
    full_extent = metadata.get("fullExtent") or metadata.get("initialExtent")
    source = leaf.source
    if not isinstance(source, TileSource):
        return

    if source.tile_grid is None and tile_info:
        source.tile_grid = tile_grid_from_tile_info(tile_info, full_extent)
    if source.projection is None:
        source.projection = _wkid(tile_info.get("spatialReference"))
    if source.extent is None and full_extent:
        source.extent = [full_extent.get("xmin"), full_extent.get("ymin"), full_extent.get("xmax"), full_extent.get("ymax")]
    if leaf.bounds is None and full_extent:
        try:
            leaf.bounds = Extent.from_esri(full_extent)
        except ValueError as e:
            logger.warning(f"Ignoring extent of {leaf.describe()}: {e}")

    if metadata.get("copyrightText") and not leaf.attributions:
        leaf.attributions = [metadata["copyrightText"]]


class VectorTileResolver(LayerResolver):
    """Resolver for ArcGIS VectorTileServer endpoints.

    The tiling scheme must use the map projection; vector tiles are not reprojected.
    """

    def normalize(self, root: "GeoviewLayerConfig") -> None:
        base, _ = split_query(root.metadata_access_path)
        root.metadata_access_path = TILE_TEMPLATE_PATTERN.sub("", base).rstrip("/")

    async def fetch_service_metadata(self, root: "GeoviewLayerConfig") -> FetchResult:
        return await root.context.client.fetch_json(with_query(root.metadata_access_path, f="json"))

    def synthesize_tree(self, root: "GeoviewLayerConfig") -> list[ConfigNode]:
        name = root.get_service_metadata().get("name")
        return [self.create_leaf(name or "tile", layer_name=name)]

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        metadata = root.get_service_metadata()
        leaf.layer_metadata = metadata

        tile_info = metadata.get("tileInfo") or {}
        wkid = _wkid(tile_info.get("spatialReference"))
        if wkid != root.context.map_projection:
            raise ProjectionMismatchError(
                f"Tiles of {leaf.describe()} use EPSG:{wkid}, the map uses EPSG:{root.context.map_projection}",
                params=[leaf.describe(), wkid, root.context.map_projection],
            )

        if not leaf.layer_name and metadata.get("name"):
            leaf.layer_name = normalize_localized(metadata["name"])
        apply_tile_metadata(leaf, metadata)

        source = leaf.source
        if source.data_access_path is None:
            tiles = metadata.get("tiles") or [VECTOR_TILE_TEMPLATE]
            source.data_access_path = join_path(root.metadata_access_path, tiles[0])
        if isinstance(source, TileSource) and source.style_url is None and metadata.get("defaultStyles"):
            source.style_url = join_path(root.metadata_access_path, metadata["defaultStyles"], "root.json")


class XyzTileResolver(LayerResolver):
    """Resolver for raster tiles.

    A URL holding a ``{z}`` template needs no metadata; any other URL is read as an
    ArcGIS tiled MapServer.
    """

    @staticmethod
    def is_template(url: str) -> bool:
        return "{z}" in url

    async def fetch_service_metadata(self, root: "GeoviewLayerConfig") -> FetchResult:
        if self.is_template(root.metadata_access_path):
            return FetchResult(root.metadata_access_path, data={})
        return await root.context.client.fetch_json(with_query(root.metadata_access_path, f="json"))

    def synthesize_tree(self, root: "GeoviewLayerConfig") -> list[ConfigNode]:
        metadata = root.get_service_metadata()
        name = metadata.get("mapName") or metadata.get("name") or root.geoview_layer_name or None
        return [self.create_leaf("0", layer_name=name)]

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        metadata = root.get_service_metadata()
        leaf.layer_metadata = metadata
        source = leaf.source

        if self.is_template(root.metadata_access_path):
            if source.data_access_path is None:
                source.data_access_path = root.metadata_access_path
            return

        apply_tile_metadata(leaf, metadata)
        if source.data_access_path is None:
            source.data_access_path = join_path(root.metadata_access_path, RASTER_TILE_TEMPLATE)
