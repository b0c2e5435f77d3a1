"""Layer type resolvers registry."""

from geoview_config.core.exceptions import UnsupportedLayerTypeError
from geoview_config.resolvers.base import LayerResolver
from geoview_config.resolvers.esri import EsriResolver
from geoview_config.resolvers.files import FileResolver
from geoview_config.resolvers.geocore import GeocoreResolver
from geoview_config.resolvers.image_static import ImageStaticResolver
from geoview_config.resolvers.ogc_feature import OgcFeatureResolver
from geoview_config.resolvers.tiles import VectorTileResolver, XyzTileResolver
from geoview_config.resolvers.wfs import WfsResolver
from geoview_config.resolvers.wms import WmsResolver

# Registry of resolvers per geoview layer type
RESOLVERS: dict[str, type[LayerResolver]] = {
    "esriDynamic": EsriResolver,
    "esriFeature": EsriResolver,
    "esriImage": EsriResolver,
    "imageStatic": ImageStaticResolver,
    "GeoJSON": FileResolver,
    "GeoPackage": FileResolver,
    "KML": FileResolver,
    "WKB": FileResolver,
    "CSV": FileResolver,
    "xyzTiles": XyzTileResolver,
    "vectorTiles": VectorTileResolver,
    "ogcFeature": OgcFeatureResolver,
    "ogcWfs": WfsResolver,
    "ogcWms": WmsResolver,
    "geoCore": GeocoreResolver,
}


def get_resolver(layer_type: str) -> LayerResolver:
    """Get a resolver instance for the given layer type.

    Args:
        layer_type: Geoview layer type (e.g., "esriDynamic", "ogcWms")

    Returns:
        Instance of the resolver

    Raises:
        UnsupportedLayerTypeError: If layer type is not supported
    """
    if layer_type not in RESOLVERS:
        raise UnsupportedLayerTypeError(
            f"Unsupported layer type: {layer_type}. Supported types: {', '.join(RESOLVERS.keys())}",
            params=[layer_type],
        )

    resolver_class = RESOLVERS[layer_type]
    return resolver_class(layer_type)


def get_available_layer_types() -> list[tuple[str, str]]:
    """Get list of available layer types.

    Returns:
        List of (type_name, display_name) tuples
    """
    return [(layer_type, get_resolver(layer_type).get_display_name()) for layer_type in RESOLVERS]


__all__ = [
    "RESOLVERS",
    "get_resolver",
    "get_available_layer_types",
    "LayerResolver",
    "EsriResolver",
    "FileResolver",
    "GeocoreResolver",
    "ImageStaticResolver",
    "OgcFeatureResolver",
    "VectorTileResolver",
    "WfsResolver",
    "WmsResolver",
    "XyzTileResolver",
]
