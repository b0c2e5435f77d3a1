"""Public facade: validation, creation, serialization and parsing of layer configurations."""

import copy
import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Awaitable

import yaml
from pydantic import ValidationError

from geoview_config.core.config import LAYER_TYPES
from geoview_config.core.context import ResolutionContext
from geoview_config.models.generated import GeoviewLayerModel, MapConfigModel
from geoview_config.models.geoview_layer_config import GeoviewLayerConfig
from geoview_config.models.nodes import ConfigNode
from geoview_config.utils.merge import merge_defaults
from geoview_config.utils.urls import is_uuid, split_query

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schemas" / "layer-config.schema.yaml"

# URL heuristics in the order they are tried, matched case-insensitively
LAYER_TYPE_PATTERNS = [
    ("xyzTiles", re.compile(r"\{z\}/\{[xy]\}/\{[xy]\}", re.IGNORECASE), "url"),
    ("esriDynamic", re.compile(r"MapServer/?$", re.IGNORECASE), "base"),
    ("esriFeature", re.compile(r"FeatureServer|MapServer(?:/\d+)+", re.IGNORECASE), "url"),
    ("esriImage", re.compile(r"ImageServer", re.IGNORECASE), "url"),
    ("ogcWfs", re.compile(r"wfs", re.IGNORECASE), "url"),
    ("GeoJSON", re.compile(r"\.(?:geo)?json$", re.IGNORECASE), "base"),
    ("GeoPackage", re.compile(r"\.gpkg$", re.IGNORECASE), "base"),
    ("vectorTiles", re.compile(r"VectorTileServer", re.IGNORECASE), "url"),
    ("ogcWms", re.compile(r"wms", re.IGNORECASE), "url"),
    ("CSV", re.compile(r"\.csv$", re.IGNORECASE), "base"),
    ("KML", re.compile(r"\.kml$", re.IGNORECASE), "base"),
    ("WKB", re.compile(r"\.wkb$", re.IGNORECASE), "base"),
    ("ogcFeature", re.compile(r"collections", re.IGNORECASE), "base"),
]


@dataclass
class ValidatedConfig:
    """Result of validating a map configuration document."""

    config: dict
    error_detected: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def layers(self) -> list[dict]:
        return self.config.get("listOfGeoviewLayerConfig", [])


@lru_cache
def load_schema() -> dict:
    """Load the layer configuration JSON Schema."""
    with open(SCHEMA_PATH) as f:
        return yaml.safe_load(f)


def extract_defaults(node: dict) -> Any:
    """
    Collect the ``default`` values of a schema node.

    Returns:
        The node's own default, a mapping of its properties' defaults, or None
    """
    if "default" in node:
        return copy.deepcopy(node["default"])
    properties = node.get("properties")
    if not properties:
        return None
    defaults = {}
    for name, child in properties.items():
        value = extract_defaults(child)
        if value is not None:
            defaults[name] = value
    return defaults or None


def get_default_config() -> dict:
    """Map level configuration made of the schema defaults only."""
    return extract_defaults(load_schema()) or {}


def get_layer_defaults() -> dict:
    return extract_defaults(load_schema()["definitions"]["geoviewLayer"]) or {}


async def _fetched(root: GeoviewLayerConfig) -> GeoviewLayerConfig:
    await root.fetch_service_metadata()
    return root


def _format_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in item['loc']) or '<root>'}: {item['msg']}" for item in error.errors()
    )


class ConfigApi:
    """Entry points for validating, resolving and (de)serializing layer configurations."""

    @staticmethod
    def validate(document: dict | str) -> ValidatedConfig:
        """
        Validate a map configuration document and fill in its defaults.

        An unreadable or structurally invalid document gives the default
        configuration; an invalid geoview layer is dropped. Both are flagged.

        Args:
            document: Mapping, or JSON / YAML text

        Returns:
            ValidatedConfig holding the completed configuration
        """
        errors = []

        if isinstance(document, str):
            try:
                document = yaml.safe_load(document)
            except yaml.YAMLError as e:
                logger.error(f"Unreadable configuration: {e}")
                return ValidatedConfig(get_default_config(), True, [f"Unreadable configuration: {e}"])

        if not isinstance(document, dict):
            logger.error("Configuration must be an object, using the default configuration")
            return ValidatedConfig(get_default_config(), True, ["Configuration must be an object"])

        try:
            MapConfigModel.model_validate(document)
        except ValidationError as e:
            message = _format_validation_error(e)
            logger.error(f"Invalid configuration, using the default configuration: {message}")
            return ValidatedConfig(get_default_config(), True, [message])

        config = merge_defaults({k: v for k, v in document.items() if k != "listOfGeoviewLayerConfig"},
                                get_default_config())

        layer_defaults = get_layer_defaults()
        layers = []
        for index, layer in enumerate(document.get("listOfGeoviewLayerConfig") or []):
            try:
                GeoviewLayerModel.model_validate(layer)
            except ValidationError as e:
                layer_id = layer.get("geoviewLayerId", index) if isinstance(layer, dict) else index
                message = f"Geoview layer {layer_id}: {_format_validation_error(e)}"
                logger.warning(f"Dropping invalid geoview layer: {message}")
                errors.append(message)
                continue
            layers.append(merge_defaults(layer, layer_defaults))
        config["listOfGeoviewLayerConfig"] = layers

        return ValidatedConfig(config, bool(errors), errors)

    @staticmethod
    def create_from_type(
        layer_type: str,
        geoview_layer_id: str,
        geoview_layer_name,
        url: str,
        *,
        context: ResolutionContext,
        list_of_layer_entry_config: list[dict] | None = None,
        initial_settings: dict | None = None,
        is_time_aware: bool = True,
    ) -> Awaitable[GeoviewLayerConfig]:
        """
        Create a geoview layer of a given type and resolve it.

        The root is built immediately, so an unknown layer type raises before
        anything is awaited.

        Returns:
            Awaitable giving the resolved root

        Raises:
            UnsupportedLayerTypeError: If the layer type is not registered
        """
        root = GeoviewLayerConfig(
            geoview_layer_id,
            geoview_layer_name,
            url,
            layer_type,
            context,
            list_of_layer_entry_config=list_of_layer_entry_config,
            initial_settings=initial_settings,
            is_geocore=layer_type == "geoCore",
            is_time_aware=is_time_aware,
        )
        return _fetched(root)

    @staticmethod
    def create_from_config(layer_config: dict, context: ResolutionContext) -> Awaitable[GeoviewLayerConfig]:
        """
        Create a geoview layer from its configuration and resolve it.

        Raises:
            ConfigIntegrityError: If the geoview layer id is empty
            UnsupportedLayerTypeError: If the layer type is not registered
        """
        return _fetched(GeoviewLayerConfig.from_dict(layer_config, context))

    @staticmethod
    def serialize(target: GeoviewLayerConfig | ConfigNode | list, indent: int = 2) -> str:
        """
        Serialize roots or nodes to deterministic JSON.

        Layer paths, raw metadata, statuses and back-references are not serialized.
        """
        if isinstance(target, (list, tuple)):
            data = [item.to_dict() for item in target]
        else:
            data = target.to_dict()
        return json.dumps(data, indent=indent, sort_keys=True, ensure_ascii=False)

    @staticmethod
    def parse(text: str) -> list[GeoviewLayerConfig]:
        """
        Rebuild roots from serialized JSON without network access.

        Raises:
            ValueError: If the text is not JSON or holds no geoview layer
            ConfigIntegrityError: If a geoview layer id is empty
        """
        data = json.loads(text)
        items = data if isinstance(data, list) else [data]
        if not all(isinstance(item, dict) for item in items):
            raise ValueError("Serialized configuration must hold geoview layer objects")
        return [GeoviewLayerConfig.from_dict(item) for item in items]

    @staticmethod
    def guess_layer_type(url: str) -> str | None:
        """
        Guess the geoview layer type of a URL.

        Returns:
            Layer type, or None if no heuristic matches
        """
        if not url:
            return None
        url = url.strip()
        if is_uuid(url):
            return "geoCore"
        base = split_query(url)[0]
        for layer_type, pattern, target in LAYER_TYPE_PATTERNS:
            if pattern.search(base if target == "base" else url):
                return layer_type
        return None

    @staticmethod
    def get_layer_types() -> list[dict]:
        """Type name, display name and leaf entry kind of each supported layer type."""
        return [
            {"name": info.name, "displayName": info.display_name, "entryKind": info.entry_kind.value}
            for info in LAYER_TYPES.values()
        ]
