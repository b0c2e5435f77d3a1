"""Resolver for GeoCore records: a UUID standing for another geoview layer."""

import logging
from typing import TYPE_CHECKING

from geoview_config.core.exceptions import ConfigIntegrityError, ServiceMetadataError, UnsupportedLayerTypeError
from geoview_config.core.fetcher import FetchResult
from geoview_config.resolvers.base import LayerResolver
from geoview_config.utils.urls import is_uuid, join_path, with_query

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

logger = logging.getLogger(__name__)


def read_geocore_layer(response: dict, language: str) -> dict:
    """
    Extract the first layer of a GeoCore ``vcs`` response.

    Raises:
        ServiceMetadataError: If the response holds no layer for the language
    """
    records = ((response.get("reponse") or {}).get("rcs") or {}).get(language)
    if not records:
        details = response.get("errorMessage") or "no records"
        raise ServiceMetadataError(f"Invalid response from GeoCore service: {details}", params=[details])

    layers = records[0].get("layers") or []
    if not layers or not isinstance(layers[0], dict):
        raise ServiceMetadataError("No layers returned by GeoCore service")
    return layers[0]


def entries_from_geocore_layer(layer: dict) -> list[dict]:
    """Entry configuration of a GeoCore layer (ESRI entries use ``index``, others ``id``)."""
    entries = []
    for item in layer.get("layerEntries") or []:
        layer_id = item.get("index", item.get("id"))
        if layer_id is None:
            continue
        entry = {"layerId": str(layer_id)}
        if layer.get("layerType") == "ogcWms":
            entry["source"] = {"serverType": layer.get("serverType") or "mapserver"}
        entries.append(entry)
    return entries


class GeocoreResolver(LayerResolver):
    """Looks up the record and retargets the root to the layer type it describes."""

    def normalize(self, root: "GeoviewLayerConfig") -> None:
        """
        Use the geoview layer id when no UUID is given as access path.

        Raises:
            ConfigIntegrityError: If no UUID is available
        """
        root.is_geocore = True
        if not root.metadata_access_path:
            root.metadata_access_path = root.geoview_layer_id
        if not is_uuid(root.metadata_access_path):
            raise ConfigIntegrityError(
                f"GeoCore layer {root.geoview_layer_id} requires a UUID, got {root.metadata_access_path}",
                params=[root.geoview_layer_id, root.metadata_access_path],
            )

    async def fetch_service_metadata(self, root: "GeoviewLayerConfig") -> FetchResult:
        language = root.context.language
        url = with_query(join_path(root.context.geocore_url, "vcs"), lang=language, id=root.metadata_access_path)
        result = await root.context.client.fetch_json(url)
        if not result.ok:
            return result

        try:
            layer = read_geocore_layer(result.data, language)
        except ServiceMetadataError as e:
            return FetchResult(url, error=e)

        if layer.get("isTimeAware") is not None:
            root.is_time_aware = bool(layer["isTimeAware"])
        try:
            root.retarget(layer.get("layerType"), layer.get("url"), entries_from_geocore_layer(layer), layer.get("name"))
        except UnsupportedLayerTypeError as e:
            return FetchResult(
                url,
                error=ServiceMetadataError(f"GeoCore record has an unsupported layer type: {e}", params=[layer.get("layerType")]),
            )

        if root.build_error is not None:
            return FetchResult(url, error=root.build_error)
        return await root.resolver.fetch_service_metadata(root)
