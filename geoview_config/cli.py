"""CLI mode for resolving layer configuration files."""

import asyncio
import logging
from pathlib import Path

import yaml

from geoview_config.config_api import ConfigApi
from geoview_config.core.context import ResolutionContext
from geoview_config.core.exceptions import GeoviewConfigError
from geoview_config.models.geoview_layer_config import GeoviewLayerConfig
from geoview_config.models.layer_status import LayerStatus

logger = logging.getLogger(__name__)


def load_config(config_path: str) -> dict:
    """
    Load YAML (or JSON) configuration file.

    Args:
        config_path: Path to config file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is invalid
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_file) as f:
        return yaml.safe_load(f)


async def resolve_config(config: dict) -> list[GeoviewLayerConfig]:
    """
    Resolve every geoview layer of a validated configuration concurrently.

    Args:
        config: Configuration returned by ConfigApi.validate

    Returns:
        Resolved roots, in configuration order
    """
    async with ResolutionContext(
        map_projection=config["mapProjection"],
        language=config["language"],
        geocore_url=config["serviceUrls"]["geocoreUrl"],
    ) as context:
        roots = [GeoviewLayerConfig.from_dict(layer, context) for layer in config["listOfGeoviewLayerConfig"]]
        await asyncio.gather(*(root.fetch_service_metadata() for root in roots))
    return roots


def log_summary(roots: list[GeoviewLayerConfig]) -> None:
    for root in roots:
        leaves = list(root.iter_leaves())
        loaded = sum(1 for leaf in leaves if leaf.status is LayerStatus.LOADED)
        logger.info(f"  {root.geoview_layer_id} ({root.geoview_layer_type}): {root.status.value}, "
                    f"{loaded}/{len(leaves)} layer(s) loaded")
        for node in root.iter_nodes():
            if node.error is not None and node.status is LayerStatus.ERROR:
                logger.info(f"    ✗ {node.get_path()}: [{node.error.message_key}] {node.error}")


def run_cli(config_path: str, output: str | None = None) -> int:
    """
    Run CLI mode with config file.

    Args:
        config_path: Path to YAML or JSON configuration file
        output: Optional path of the JSON output (printed to stdout otherwise)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        logger.info(f"Loading configuration from: {config_path}")
        document = load_config(config_path)

        validated = ConfigApi.validate(document)
        for error in validated.errors:
            logger.error(f"Configuration error: {error}")

        if not validated.layers:
            logger.warning("No geoview layers to resolve")

        logger.info("Configuration:")
        logger.info(f"  Language: {validated.config['language']}")
        logger.info(f"  Map projection: EPSG:{validated.config['mapProjection']}")
        logger.info(f"  Geoview layers: {len(validated.layers)}")

        roots = asyncio.run(resolve_config(validated.config))

        logger.info("Resolution summary:")
        log_summary(roots)

        text = ConfigApi.serialize(roots)
        if output:
            Path(output).write_text(text + "\n", encoding="utf-8")
            logger.info(f"✓ Created: {output}")
        else:
            print(text)

        if validated.error_detected or any(root.error_detected for root in roots):
            logger.error("Errors detected while resolving the configuration")
            return 1
        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML: {e}")
        return 1
    except (ValueError, GeoviewConfigError) as e:
        logger.error(f"Configuration error: {e}")
        return 1
