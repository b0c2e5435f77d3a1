"""Integration tests resolving ArcGIS REST services served by a local server."""

import asyncio

from geoview_config.core.context import ResolutionContext
from geoview_config.core.exceptions import (
    ErrorKind,
    FetchError,
    LayerIdNotFoundError,
    ServiceMetadataError,
)
from geoview_config.models.geoview_layer_config import GeoviewLayerConfig
from geoview_config.models.layer_status import LayerStatus
from geoview_config.models.nodes import GroupLayerConfig, LeafLayerConfig
from tests.helpers import resolve

SERVICE_PATH = "/arcgis/rest/services/Test/MapServer"

POLYGON_LAYER = {
    "id": 1,
    "name": "B",
    "type": "Feature Layer",
    "geometryType": "esriGeometryPolygon",
    "minScale": 5000000,
    "maxScale": 0,
    "defaultVisibility": False,
    "capabilities": "Map,Query,Data",
    "copyrightText": "Test data",
    "displayField": "NAME",
    "extent": {"xmin": -120, "ymin": 45, "xmax": -110, "ymax": 55, "spatialReference": {"wkid": 4326}},
    "fields": [
        {"name": "OBJECTID", "type": "esriFieldTypeOID", "alias": "OBJECTID"},
        {"name": "NAME", "type": "esriFieldTypeString", "alias": "Name"},
        {"name": "UPDATED", "type": "esriFieldTypeDate", "alias": "Updated"},
        {"name": "Shape", "type": "esriFieldTypeGeometry", "alias": "Shape"},
    ],
    "timeInfo": {"startTimeField": "UPDATED", "timeExtent": [0, 86400000]},
    "drawingInfo": {
        "renderer": {
            "type": "simple",
            "symbol": {
                "type": "esriSFS",
                "style": "esriSFSSolid",
                "color": [255, 0, 0, 255],
                "outline": {"type": "esriSLS", "style": "esriSLSSolid", "color": [0, 0, 0, 255], "width": 1},
            },
        }
    },
}


def line_layer(layer_id, name):
    return {
        "id": layer_id,
        "name": name,
        "geometryType": "esriGeometryPolyline",
        "capabilities": "Map",
        "fields": [{"name": "OBJECTID", "type": "esriFieldTypeOID"}],
    }


def esri_config(service_server, layer_type="esriDynamic", entries=None, path=SERVICE_PATH):
    config = {
        "geoviewLayerId": "esri1",
        "geoviewLayerName": "ESRI test",
        "geoviewLayerType": layer_type,
        "metadataAccessPath": f"{service_server.url}{path}",
    }
    if entries is not None:
        config["listOfLayerEntryConfig"] = entries
    return config


def test_single_child_groups_are_hoisted(service_server):
    """Test a group layer holding one layer collapses to that layer."""
    service_server.add_json(
        SERVICE_PATH,
        {
            "mapName": "Test",
            "layers": [
                {"id": 0, "name": "A", "type": "Group Layer", "parentLayerId": -1},
                {"id": 1, "name": "B", "type": "Feature Layer", "parentLayerId": 0,
                 "geometryType": "esriGeometryPolygon"},
            ],
        },
        query={"f": "json"},
    )
    service_server.add_json(f"{SERVICE_PATH}/1", POLYGON_LAYER, query={"f": "pjson"})

    root = resolve(esri_config(service_server))

    assert root.status is LayerStatus.LOADED
    assert not root.error_detected
    (leaf,) = root.list_of_layer_entry_config
    assert isinstance(leaf, LeafLayerConfig)
    assert leaf.get_path() == "esri1/1"
    assert leaf.layer_name == {"en": "B", "fr": "B"}
    assert leaf.geometry_type == "Polygon"
    assert leaf.status is LayerStatus.LOADED


def test_layer_metadata_applied(service_server):
    """Test per-layer metadata fills the leaf."""
    service_server.add_json(SERVICE_PATH, {"layers": [POLYGON_LAYER]}, query={"f": "json"})
    service_server.add_json(f"{SERVICE_PATH}/1", POLYGON_LAYER, query={"f": "pjson"})

    root = resolve(esri_config(service_server, layer_type="esriFeature"))

    (leaf,) = root.list_of_layer_entry_config
    assert leaf.status is LayerStatus.LOADED
    assert leaf.bounds.to_list() == [-120.0, 45.0, -110.0, 55.0]
    assert leaf.min_scale == 5000000
    assert leaf.max_scale is None
    assert leaf.attributions == ["Test data"]
    assert leaf.initial_settings.queryable
    assert not leaf.initial_settings.visible

    feature_info = leaf.source.feature_info
    assert feature_info.queryable
    assert feature_info.name_field == "NAME"
    assert [(f.name, f.type) for f in feature_info.outfields] == [
        ("OBJECTID", "number"),
        ("NAME", "string"),
        ("UPDATED", "date"),
    ]

    assert leaf.temporal_dimension.field_name == "UPDATED"
    assert leaf.temporal_dimension.nearest_values == "continuous"

    polygon = leaf.layer_style.get("Polygon")
    assert polygon.type == "simple"
    assert polygon.info[0].settings["color"] == "rgba(255,0,0,1.0)"

    # Raw metadata is kept on the leaf but never serialized
    assert leaf.layer_metadata["id"] == 1
    assert "layerMetadata" not in leaf.to_dict()


def test_group_layers_build_nested_groups(service_server):
    """Test group layers become nested groups under a group named after the map."""
    service_server.add_json(
        SERVICE_PATH,
        {
            "mapName": "Test map",
            "layers": [
                {"id": 0, "name": "Roads", "parentLayerId": -1, "geometryType": "esriGeometryPolyline"},
                {"id": 1, "name": "Nature", "type": "Group Layer", "parentLayerId": -1},
                {"id": 2, "name": "Parks", "parentLayerId": 1, "geometryType": "esriGeometryPolyline"},
                {"id": 3, "name": "Trails", "parentLayerId": 1, "geometryType": "esriGeometryPolyline"},
            ],
        },
        query={"f": "json"},
    )
    for layer_id, name in ((0, "Roads"), (2, "Parks"), (3, "Trails")):
        service_server.add_json(f"{SERVICE_PATH}/{layer_id}", line_layer(layer_id, name), query={"f": "pjson"})

    root = resolve(esri_config(service_server))

    assert root.status is LayerStatus.LOADED
    (top,) = root.list_of_layer_entry_config
    assert isinstance(top, GroupLayerConfig)
    assert top.is_metadata_layer_group
    assert top.layer_name["en"] == "Test map"
    roads, nature = top.children
    assert roads.layer_id == "0"
    assert isinstance(nature, GroupLayerConfig)
    assert [child.get_path() for child in nature.children] == [f"esri1/{top.layer_id}/1/2", f"esri1/{top.layer_id}/1/3"]
    assert top.status is LayerStatus.LOADED


def test_partial_failure(service_server):
    """Test one failing layer leaves its siblings loaded and flags the tree."""
    service_server.add_json(
        SERVICE_PATH,
        {
            "layers": [
                {"id": 0, "name": "Roads", "parentLayerId": -1, "geometryType": "esriGeometryPolyline"},
                {"id": 1, "name": "Nature", "type": "Group Layer", "parentLayerId": -1},
                {"id": 2, "name": "Parks", "parentLayerId": 1, "geometryType": "esriGeometryPolyline"},
                {"id": 3, "name": "Trails", "parentLayerId": 1, "geometryType": "esriGeometryPolyline"},
            ],
        },
        query={"f": "json"},
    )
    service_server.add_json(f"{SERVICE_PATH}/0", line_layer(0, "Roads"), query={"f": "pjson"})
    service_server.add_json(f"{SERVICE_PATH}/2", line_layer(2, "Parks"), query={"f": "pjson"})
    service_server.add_text(f"{SERVICE_PATH}/3", "Server error", query={"f": "pjson"}, status=500)

    root = resolve(esri_config(service_server))

    leaves = {leaf.layer_id: leaf for leaf in root.iter_leaves()}
    assert leaves["0"].status is LayerStatus.LOADED
    assert leaves["2"].status is LayerStatus.LOADED
    assert leaves["3"].status is LayerStatus.ERROR
    assert isinstance(leaves["3"].error, FetchError)
    assert leaves["3"].error_reason is ErrorKind.TRANSPORT

    nature = leaves["3"].parent
    assert nature.status is LayerStatus.ERROR
    assert nature.error_detected
    assert not leaves["2"].error_detected
    assert root.status is LayerStatus.ERROR
    assert root.error_detected


def test_declared_entry_missing_from_service(service_server):
    """Test a declared layer id absent from the service is reported on that leaf only."""
    service_server.add_json(
        SERVICE_PATH,
        {"layers": [line_layer(0, "Roads"), line_layer(1, "Rivers")]},
        query={"f": "json"},
    )
    service_server.add_json(f"{SERVICE_PATH}/0", line_layer(0, "Roads"), query={"f": "pjson"})

    root = resolve(esri_config(service_server, entries=[{"layerId": 0}, {"layerId": "99"}]))

    found, missing = root.list_of_layer_entry_config
    assert found.status is LayerStatus.LOADED
    assert missing.status is LayerStatus.ERROR
    assert isinstance(missing.error, LayerIdNotFoundError)
    assert missing.error.params == ["esri1/99"]
    assert service_server.count(f"{SERVICE_PATH}/99") == 0
    assert root.error_detected


def test_http_error(service_server):
    """Test a non-2xx service response fails the whole root."""
    service_server.add_text(SERVICE_PATH, "Server error", query={"f": "json"}, status=500)

    root = resolve(esri_config(service_server, entries=[{"layerId": "0"}]))

    assert root.status is LayerStatus.ERROR
    assert isinstance(root.error, FetchError)
    assert root.error.kind is ErrorKind.TRANSPORT
    (leaf,) = root.list_of_layer_entry_config
    assert leaf.status is LayerStatus.ERROR
    assert leaf.error is root.error


def test_http_error_without_entries(service_server):
    """Test a non-2xx service response leaves an undeclared root empty and failed without raising."""
    service_server.add_text(SERVICE_PATH, "Server error", query={"f": "json"}, status=500)

    root = resolve(esri_config(service_server))

    assert root.list_of_layer_entry_config == ()
    assert root.error_detected
    assert root.status is LayerStatus.ERROR
    assert isinstance(root.error, FetchError)


def test_non_200_success_status(service_server):
    """Test any 2xx status is accepted as a successful response."""
    service_server.add_json(
        SERVICE_PATH,
        {"layers": [{"id": 1, "name": "B", "type": "Feature Layer", "geometryType": "esriGeometryPolygon"}]},
        query={"f": "json"},
        status=203,
    )
    service_server.add_json(f"{SERVICE_PATH}/1", POLYGON_LAYER, query={"f": "pjson"}, status=203)

    root = resolve(esri_config(service_server))

    assert root.status is LayerStatus.LOADED
    (leaf,) = root.list_of_layer_entry_config
    assert leaf.geometry_type == "Polygon"


def test_embedded_service_error(service_server):
    """Test an error object returned with HTTP 200 is a metadata error."""
    service_server.add_json(SERVICE_PATH, {"error": {"code": 499, "message": "Token Required"}}, query={"f": "json"})

    root = resolve(esri_config(service_server))

    assert root.status is LayerStatus.ERROR
    assert isinstance(root.error, ServiceMetadataError)
    assert "Token Required" in str(root.error)
    assert root.list_of_layer_entry_config == ()


def test_empty_and_malformed_responses(service_server):
    """Test empty objects and invalid JSON are metadata errors."""
    service_server.add_json(SERVICE_PATH, {}, query={"f": "json"})
    root = resolve(esri_config(service_server))
    assert isinstance(root.error, ServiceMetadataError)

    service_server.add_text(SERVICE_PATH, "{not json", query={"f": "json"})
    root = resolve(esri_config(service_server))
    assert isinstance(root.error, ServiceMetadataError)


def test_unreachable_service():
    """Test a connection failure is a transport error."""
    root = resolve({
        "geoviewLayerId": "esri1",
        "geoviewLayerType": "esriDynamic",
        "metadataAccessPath": "http://127.0.0.1:1/arcgis/rest/services/Test/MapServer",
    })

    assert root.status is LayerStatus.ERROR
    assert root.error.kind is ErrorKind.TRANSPORT


def test_timeout(service_server):
    """Test a slow service gives a timeout error."""
    service_server.add_json(SERVICE_PATH, {"layers": [line_layer(0, "Roads")]}, query={"f": "json"}, delay=2)

    root = resolve(esri_config(service_server), timeout=0.3)

    assert root.status is LayerStatus.ERROR
    assert isinstance(root.error, FetchError)
    assert root.error.kind is ErrorKind.TIMEOUT


def test_cancellation(service_server):
    """Test cancelling a resolution marks unfinished nodes as cancelled and propagates."""
    service_server.add_json(SERVICE_PATH, {"layers": [line_layer(0, "Roads")]}, query={"f": "json"}, delay=2)

    async def run():
        async with ResolutionContext() as context:
            root = GeoviewLayerConfig.from_dict(esri_config(service_server, entries=[{"layerId": "0"}]), context)
            task = asyncio.ensure_future(root.fetch_service_metadata())
            await asyncio.sleep(0.2)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                return root, True
            return root, False

    root, cancelled = asyncio.run(run())

    assert cancelled
    assert root.status is LayerStatus.ERROR
    assert root.error.kind is ErrorKind.CANCELLED
    (leaf,) = root.list_of_layer_entry_config
    assert leaf.status is LayerStatus.ERROR
    assert leaf.error_reason is ErrorKind.CANCELLED


def test_concurrent_fetches_share_one_request(service_server):
    """Test overlapping fetches wait for the one in flight and a later fetch starts over."""
    service_server.add_json(SERVICE_PATH, {"layers": [line_layer(0, "Roads")]}, query={"f": "json"})
    service_server.add_json(f"{SERVICE_PATH}/0", line_layer(0, "Roads"), query={"f": "pjson"})

    async def run():
        async with ResolutionContext() as context:
            root = GeoviewLayerConfig.from_dict(esri_config(service_server), context)
            await asyncio.gather(root.fetch_service_metadata(), root.fetch_service_metadata())
            first_count = service_server.count(SERVICE_PATH)
            await root.fetch_service_metadata()
            return root, first_count

    root, first_count = asyncio.run(run())

    assert first_count == 1
    assert service_server.count(SERVICE_PATH) == 2
    assert root.status is LayerStatus.LOADED
    assert [leaf.layer_id for leaf in root.iter_leaves()] == ["0"]


def test_image_service(service_server):
    """Test an image service is a single leaf resolved from the service metadata."""
    path = "/arcgis/rest/services/Elevation/ImageServer"
    service_server.add_json(
        path,
        {
            "name": "Elevation",
            "capabilities": "Image,Metadata",
            "extent": {"xmin": -141, "ymin": 41, "xmax": -52, "ymax": 84, "spatialReference": {"wkid": 4326}},
            "timeInfo": {"startTimeField": "date", "timeExtent": [0, 86400000], "timeInterval": 1},
        },
        query={"f": "json"},
    )

    root = resolve(esri_config(service_server, layer_type="esriImage", path=path))

    (leaf,) = root.list_of_layer_entry_config
    assert leaf.layer_id == "Elevation"
    assert leaf.status is LayerStatus.LOADED
    assert leaf.bounds.to_list() == [-141.0, 41.0, -52.0, 84.0]
    assert leaf.temporal_dimension.single_handle
    assert not leaf.initial_settings.queryable
    assert service_server.count(f"{path}/Elevation") == 0
