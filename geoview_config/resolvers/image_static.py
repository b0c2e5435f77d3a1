"""Resolver for georeferenced static images."""

from typing import TYPE_CHECKING

from geoview_config.core.exceptions import ConfigIntegrityError
from geoview_config.models.extent import Extent
from geoview_config.models.nodes import LeafLayerConfig
from geoview_config.resolvers.base import LayerResolver
from geoview_config.utils.urls import join_path

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig


class ImageStaticResolver(LayerResolver):
    """Static images have no service metadata; each entry names an image and its extent."""

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        source = leaf.source
        if source.extent is None:
            raise ConfigIntegrityError(
                f"Static image {leaf.describe()} requires source.extent", params=[leaf.describe()]
            )

        if source.projection is None:
            source.projection = root.context.map_projection
        if leaf.bounds is None:
            leaf.bounds = Extent.from_projected(source.extent, source.projection)
        if source.data_access_path is None:
            source.data_access_path = join_path(root.metadata_access_path, leaf.layer_id)
