"""Resolver for vector data files (GeoJSON, KML, WKB, GeoPackage, CSV)."""

import logging
from typing import TYPE_CHECKING

from geoview_config.core.exceptions import ConfigIntegrityError
from geoview_config.models.nodes import LeafLayerConfig
from geoview_config.models.source import VectorSource
from geoview_config.resolvers.base import LayerResolver
from geoview_config.utils.features import FeatureSummary, parse_csv, parse_geojson, parse_geopackage, parse_wkb
from geoview_config.utils.kml import parse_kml
from geoview_config.utils.localized import normalize_localized
from geoview_config.utils.urls import file_name, join_path, parent_url, split_query

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

logger = logging.getLogger(__name__)


class FileResolver(LayerResolver):
    """Files carry no service metadata: each leaf downloads and summarizes its own file.

    A metadata access path naming a file is split into its folder and a single entry.
    """

    def is_file_url(self, url: str) -> bool:
        base, _ = split_query(url)
        return base.lower().endswith(self.info.file_extensions)

    def normalize(self, root: "GeoviewLayerConfig") -> None:
        """
        Split a file URL into its folder and one entry named after the file.

        Raises:
            ConfigIntegrityError: If the path names a file and entries are listed too
        """
        if not self.is_file_url(root.metadata_access_path):
            return
        if root.entries_config is not None:
            raise ConfigIntegrityError(
                f"Geoview layer {root.geoview_layer_id} names the file {root.metadata_access_path} "
                f"and also lists layer entries",
                params=[root.geoview_layer_id, root.metadata_access_path],
            )
        name = file_name(split_query(root.metadata_access_path)[0])
        root.entries_config = [{"layerId": name}]
        root.metadata_access_path = parent_url(root.metadata_access_path)

    async def _summarize(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig, data: bytes) -> FeatureSummary:
        source = leaf.source
        layer_type = self.info.name
        if layer_type == "GeoJSON":
            return await root.context.run_in_worker(parse_geojson, data)
        if layer_type == "KML":
            return await root.context.run_in_worker(parse_kml, data)
        if layer_type == "WKB":
            return await root.context.run_in_worker(parse_wkb, data, source.projection)
        if layer_type == "GeoPackage":
            table_name = source.table_name if isinstance(source, VectorSource) else None
            return await root.context.run_in_worker(parse_geopackage, data, table_name)
        separator = (source.separator if isinstance(source, VectorSource) else None) or ","
        return await root.context.run_in_worker(parse_csv, data, separator)

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        source = leaf.source
        if source.data_access_path is None:
            source.data_access_path = join_path(root.metadata_access_path, leaf.layer_id)

        data = (await root.context.client.fetch_bytes(source.data_access_path)).unwrap()
        summary = await self._summarize(root, leaf, data)
        logger.debug(
            f"{leaf.describe()}: {summary.geometry_type}, {len(summary.fields)} field(s), bounds {summary.bounds}"
        )

        if not leaf.layer_name and summary.name:
            leaf.layer_name = normalize_localized(summary.name)
        if leaf.geometry_type is None:
            leaf.geometry_type = summary.geometry_type
        if leaf.bounds is None:
            leaf.bounds = summary.bounds
        if source.format is None:
            source.format = self.info.name
        if source.projection is None:
            source.projection = summary.projection
        if isinstance(source, VectorSource) and source.table_name is None:
            source.table_name = summary.table_name

        feature_info = source.ensure_feature_info()
        feature_info.queryable = True
        if not feature_info.outfields:
            feature_info.outfields = summary.fields
        if feature_info.name_field is None and feature_info.outfields:
            feature_info.name_field = feature_info.outfields[0].name
        leaf.apply_metadata_settings({"states": {"queryable": True}})
