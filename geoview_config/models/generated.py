"""Pydantic models for structural validation of layer configuration documents.

The models mirror ``schemas/layer-config.schema.yaml``. Semantic checks that the
schema cannot express (layer ids resolving against services, ...) happen during
resolution.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from geoview_config.core.config import LAYER_TYPES

LocalizedString = Union[str, dict[str, Optional[str]]]
Bounds = Annotated[list[float], Field(min_length=4, max_length=4)]


class InitialSettingsModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    controls: Optional[dict[str, bool]] = None
    states: Optional[dict[str, Any]] = None


class OutFieldModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    alias: Optional[str] = None
    type: Literal["string", "number", "date", "url"] = "string"


class FeatureInfoModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    queryable: Optional[bool] = None
    nameField: Optional[str] = None
    outfields: Optional[list[OutFieldModel]] = None


class SourceModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    dataAccessPath: Optional[str] = None
    format: Optional[str] = None
    projection: Optional[Union[int, str]] = None
    extent: Optional[Bounds] = None
    featureInfo: Optional[FeatureInfoModel] = None


class LayerEntryModel(BaseModel):
    """One entry of ``listOfLayerEntryConfig``; groups nest further entries."""

    model_config = ConfigDict(extra="allow")

    layerId: Union[str, int]
    layerName: Optional[LocalizedString] = None
    entryType: Optional[Literal["vector", "vector-tile", "raster-tile", "raster-image", "group"]] = None
    initialSettings: Optional[InitialSettingsModel] = None
    source: Optional[SourceModel] = None
    layerFilter: Optional[str] = None
    geometryType: Optional[Literal["Point", "LineString", "Polygon"]] = None
    minScale: Optional[float] = None
    maxScale: Optional[float] = None
    bounds: Optional[Bounds] = None
    attributions: Optional[list[str]] = None
    listOfLayerEntryConfig: Optional[list[LayerEntryModel]] = None

    @field_validator("layerId")
    @classmethod
    def layer_id_not_empty(cls, value):
        if str(value).strip() == "":
            raise ValueError("layerId must not be empty")
        return value


class GeoviewLayerModel(BaseModel):
    """One item of ``listOfGeoviewLayerConfig``."""

    model_config = ConfigDict(extra="allow")

    geoviewLayerId: str = Field(min_length=1)
    geoviewLayerName: Optional[LocalizedString] = None
    geoviewLayerType: str
    metadataAccessPath: Optional[str] = None
    isGeocore: Optional[bool] = None
    isTimeAware: Optional[bool] = None
    serviceDateFormat: Optional[str] = None
    externalDateFormat: Optional[str] = None
    initialSettings: Optional[InitialSettingsModel] = None
    listOfLayerEntryConfig: Optional[list[LayerEntryModel]] = None

    @field_validator("geoviewLayerType")
    @classmethod
    def known_layer_type(cls, value: str) -> str:
        if value not in LAYER_TYPES:
            raise ValueError(f"Unsupported layer type: {value}. Supported types: {', '.join(LAYER_TYPES)}")
        return value


class ServiceUrlsModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    geocoreUrl: Optional[str] = None


class MapConfigModel(BaseModel):
    """A map level configuration document."""

    model_config = ConfigDict(extra="allow")

    language: Optional[Literal["en", "fr"]] = None
    mapProjection: Optional[Literal[3857, 3978]] = None
    serviceUrls: Optional[ServiceUrlsModel] = None
    listOfGeoviewLayerConfig: Optional[list[Any]] = None
