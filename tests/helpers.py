"""Helpers for resolving layer configurations in tests."""

import asyncio

from geoview_config.core.context import ResolutionContext
from geoview_config.models.geoview_layer_config import GeoviewLayerConfig


async def resolve_async(layer_config: dict, **context_kwargs) -> GeoviewLayerConfig:
    async with ResolutionContext(**context_kwargs) as context:
        root = GeoviewLayerConfig.from_dict(layer_config, context)
        await root.fetch_service_metadata()
    return root


def resolve(layer_config: dict, **context_kwargs) -> GeoviewLayerConfig:
    """Resolve one geoview layer configuration in a fresh context and event loop."""
    return asyncio.run(resolve_async(layer_config, **context_kwargs))
