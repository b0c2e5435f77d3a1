"""Integration tests resolving OGC, tile and GeoCore services served by a local server."""

from geoview_config.core.exceptions import (
    ConfigIntegrityError,
    LayerIdNotFoundError,
    ProjectionMismatchError,
    ServiceMetadataError,
)
from geoview_config.models.layer_status import LayerStatus
from geoview_config.models.nodes import GroupLayerConfig
from tests.helpers import resolve

WMS_CAPABILITIES = """<?xml version="1.0" encoding="UTF-8"?>
<WMS_Capabilities version="1.3.0" xmlns="http://www.opengis.net/wms" xmlns:xlink="http://www.w3.org/1999/xlink">
  <Service>
    <Name>WMS</Name>
    <Title>Test WMS</Title>
  </Service>
  <Capability>
    <Request/>
    <Layer queryable="1">
      <Title>Root layer</Title>
      <EX_GeographicBoundingBox>
        <westBoundLongitude>-141</westBoundLongitude>
        <eastBoundLongitude>-52</eastBoundLongitude>
        <southBoundLatitude>41</southBoundLatitude>
        <northBoundLatitude>84</northBoundLatitude>
      </EX_GeographicBoundingBox>
      <Attribution>
        <Title>Test provider</Title>
      </Attribution>
      <Style>
        <Name>default</Name>
        <Title>Default</Title>
      </Style>
      <Dimension name="time" units="ISO8601" default="2020-01-01">2019-01-01,2020-01-01</Dimension>
      <Layer>
        <Name>roads</Name>
        <Title>Roads</Title>
      </Layer>
      <Layer queryable="0">
        <Name>rivers</Name>
        <Title>Rivers</Title>
        <MaxScaleDenominator>5000000</MaxScaleDenominator>
        <MinScaleDenominator>1000</MinScaleDenominator>
      </Layer>
    </Layer>
  </Capability>
</WMS_Capabilities>
"""

WMS_EXCEPTION = """<?xml version="1.0" encoding="UTF-8"?>
<ServiceExceptionReport version="1.3.0" xmlns="http://www.opengis.net/ogc">
  <ServiceException code="InvalidParameterValue">Unknown map file</ServiceException>
</ServiceExceptionReport>
"""

WFS_CAPABILITIES = """<?xml version="1.0" encoding="UTF-8"?>
<wfs:WFS_Capabilities version="2.0.0" xmlns:wfs="http://www.opengis.net/wfs/2.0" xmlns:ows="http://www.opengis.net/ows/1.1">
  <wfs:FeatureTypeList>
    <wfs:FeatureType>
      <wfs:Name>ns:airports</wfs:Name>
      <wfs:Title>Airports</wfs:Title>
      <ows:WGS84BoundingBox>
        <ows:LowerCorner>-130 40</ows:LowerCorner>
        <ows:UpperCorner>-60 70</ows:UpperCorner>
      </ows:WGS84BoundingBox>
    </wfs:FeatureType>
    {extra}
  </wfs:FeatureTypeList>
</wfs:WFS_Capabilities>
"""

WFS_SECOND_TYPE = """
    <wfs:FeatureType>
      <wfs:Name>ns:heliports</wfs:Name>
      <wfs:Title>Heliports</wfs:Title>
    </wfs:FeatureType>
"""

WFS_SCHEMA = """<?xml version="1.0" encoding="UTF-8"?>
<xsd:schema xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:gml="http://www.opengis.net/gml/3.2">
  <xsd:complexType name="airportsType">
    <xsd:complexContent>
      <xsd:extension base="gml:AbstractFeatureType">
        <xsd:sequence>
          <xsd:element name="name" type="xsd:string"/>
          <xsd:element name="elevation" type="xsd:double"/>
          <xsd:element name="opened" type="xsd:date"/>
          <xsd:element name="geom" type="gml:PointPropertyType"/>
        </xsd:sequence>
      </xsd:extension>
    </xsd:complexContent>
  </xsd:complexType>
  <xsd:element name="airports" type="ns:airportsType" substitutionGroup="gml:AbstractFeature"/>
</xsd:schema>
"""

GEOCORE_UUID = "21b821cf-0f1c-40ee-8925-eab12d357668"


def add_ogc_feature_routes(service_server):
    service_server.add_json(
        "/ogc/collections",
        {
            "collections": [
                {
                    "id": "lakes",
                    "title": "Lakes",
                    "extent": {"spatial": {"bbox": [[-100, 45, 0, -90, 50, 100]]}},
                }
            ]
        },
        query={"f": "json"},
    )
    service_server.add_json(
        "/ogc/collections/lakes/queryables",
        {
            "properties": {
                "geometry": {"format": "geometry-polygon"},
                "name": {"type": "string", "title": "Name"},
                "area": {"type": "number"},
                "surveyed": {"type": "string", "format": "date"},
            }
        },
        query={"f": "json"},
    )


def test_wms_tree_and_inheritance(service_server):
    """Test WMS layers inherit properties from their parent layers."""
    service_server.add_xml("/wms", WMS_CAPABILITIES, query={"request": "GetCapabilities", "service": "WMS"})

    root = resolve({
        "geoviewLayerId": "wms1",
        "geoviewLayerType": "ogcWms",
        "metadataAccessPath": f"{service_server.url}/wms?SERVICE=WMS&REQUEST=GetCapabilities&map=test",
    })

    assert root.metadata_access_path == f"{service_server.url}/wms?map=test"
    assert root.status is LayerStatus.LOADED
    (group,) = root.list_of_layer_entry_config
    assert isinstance(group, GroupLayerConfig)
    assert group.layer_name["en"] == "Root layer"
    roads, rivers = group.children
    assert roads.get_path() == "wms1/Root layer/roads"

    assert roads.initial_settings.queryable
    assert roads.bounds.to_list() == [-141.0, 41.0, -52.0, 84.0]
    assert roads.attributions == ["Test provider"]
    assert roads.source.wms_style == "default"
    assert roads.source.data_access_path == root.metadata_access_path
    assert roads.temporal_dimension.range == ["2019-01-01", "2020-01-01"]
    assert roads.temporal_dimension.default == ["2020-01-01"]

    assert not rivers.initial_settings.queryable
    assert rivers.min_scale == 5000000.0
    assert rivers.max_scale == 1000.0


def test_wms_declared_entries(service_server):
    """Test declared WMS layers are checked against the capabilities."""
    service_server.add_xml("/wms", WMS_CAPABILITIES, query={"request": "GetCapabilities"})

    root = resolve({
        "geoviewLayerId": "wms1",
        "geoviewLayerType": "ogcWms",
        "metadataAccessPath": f"{service_server.url}/wms",
        "isTimeAware": False,
        "listOfLayerEntryConfig": [
            {"layerId": "rivers", "layerName": "My rivers", "source": {"wmsStyle": "custom"}},
            {"layerId": "lakes"},
        ],
    })

    rivers, lakes = root.list_of_layer_entry_config
    assert rivers.status is LayerStatus.LOADED
    assert rivers.layer_name["en"] == "My rivers"
    assert rivers.source.wms_style == "custom"
    assert rivers.temporal_dimension is None
    assert lakes.status is LayerStatus.ERROR
    assert isinstance(lakes.error, LayerIdNotFoundError)
    assert root.status is LayerStatus.ERROR


def test_wms_service_exception(service_server):
    """Test an OGC exception report is a metadata error."""
    service_server.add_xml("/wms", WMS_EXCEPTION, query={"request": "GetCapabilities"})

    root = resolve({
        "geoviewLayerId": "wms1",
        "geoviewLayerType": "ogcWms",
        "metadataAccessPath": f"{service_server.url}/wms",
    })

    assert root.status is LayerStatus.ERROR
    assert isinstance(root.error, ServiceMetadataError)
    assert "Unknown map file" in str(root.error)


def test_wms_capabilities_declared_encoding(service_server):
    """Test capabilities are decoded with the encoding their XML declaration names."""
    capabilities = WMS_CAPABILITIES.replace('encoding="UTF-8"', 'encoding="ISO-8859-1"').replace(
        "<Title>Rivers</Title>", "<Title>Données hydrographiques</Title>"
    )
    service_server.add_bytes(
        "/wms", capabilities.encode("latin-1"), content_type="text/xml", query={"request": "GetCapabilities"}
    )

    root = resolve({
        "geoviewLayerId": "wms1",
        "geoviewLayerType": "ogcWms",
        "metadataAccessPath": f"{service_server.url}/wms",
        "listOfLayerEntryConfig": [{"layerId": "rivers"}],
    })

    (rivers,) = root.list_of_layer_entry_config
    assert rivers.status is LayerStatus.LOADED
    assert rivers.layer_name["en"] == "Données hydrographiques"


def test_wms_unnamed_groups_sharing_a_title(service_server):
    """Test unnamed sibling groups with the same title still get distinct ids."""
    capabilities = """<?xml version="1.0" encoding="UTF-8"?>
<WMS_Capabilities version="1.3.0" xmlns="http://www.opengis.net/wms">
  <Capability>
    <Layer>
      <Title>Root layer</Title>
      <Layer>
        <Title>Hydrography</Title>
        <Layer><Name>rivers</Name><Title>Rivers</Title></Layer>
      </Layer>
      <Layer>
        <Title>Hydrography</Title>
        <Layer><Name>lakes</Name><Title>Lakes</Title></Layer>
      </Layer>
    </Layer>
  </Capability>
</WMS_Capabilities>
"""
    service_server.add_xml("/wms", capabilities, query={"request": "GetCapabilities"})

    root = resolve({
        "geoviewLayerId": "wms1",
        "geoviewLayerType": "ogcWms",
        "metadataAccessPath": f"{service_server.url}/wms",
    })

    assert root.status is LayerStatus.LOADED
    (group,) = root.list_of_layer_entry_config
    first, second = group.children
    assert first.layer_id == "Hydrography"
    assert second.layer_id != first.layer_id
    assert second.layer_name["en"] == "Hydrography"
    assert [leaf.layer_id for leaf in second.children] == ["lakes"]


def test_wfs_feature_type(service_server):
    """Test a WFS feature type is described by its schema."""
    service_server.add_xml("/wfs", WFS_CAPABILITIES.format(extra=""), query={"request": "GetCapabilities"})
    service_server.add_xml(
        "/wfs", WFS_SCHEMA, query={"request": "DescribeFeatureType", "typenames": "ns:airports", "version": "2.0.0"}
    )

    root = resolve({
        "geoviewLayerId": "wfs1",
        "geoviewLayerType": "ogcWfs",
        "metadataAccessPath": f"{service_server.url}/wfs?service=WFS&request=GetCapabilities",
    })

    assert root.status is LayerStatus.LOADED
    (leaf,) = root.list_of_layer_entry_config
    assert leaf.layer_id == "ns:airports"
    assert leaf.layer_name["en"] == "Airports"
    assert leaf.geometry_type == "Point"
    assert leaf.bounds.to_list() == [-130.0, 40.0, -60.0, 70.0]
    feature_info = leaf.source.feature_info
    assert [(f.name, f.type) for f in feature_info.outfields] == [
        ("name", "string"),
        ("elevation", "number"),
        ("opened", "date"),
    ]
    assert feature_info.name_field == "name"
    assert leaf.initial_settings.queryable


def test_wfs_several_feature_types(service_server):
    """Test several feature types are grouped under the geoview layer id."""
    service_server.add_xml(
        "/wfs", WFS_CAPABILITIES.format(extra=WFS_SECOND_TYPE), query={"request": "GetCapabilities"}
    )
    service_server.add_xml("/wfs", WFS_SCHEMA, query={"request": "DescribeFeatureType"})

    root = resolve({
        "geoviewLayerId": "wfs1",
        "geoviewLayerType": "ogcWfs",
        "metadataAccessPath": f"{service_server.url}/wfs",
    })

    (group,) = root.list_of_layer_entry_config
    assert group.layer_id == "wfs1"
    assert [leaf.get_path() for leaf in group.children] == ["wfs1/wfs1/ns:airports", "wfs1/wfs1/ns:heliports"]
    assert root.status is LayerStatus.LOADED


def test_ogc_feature_collection(service_server):
    """Test an items URL is reduced to the service and resolved from its queryables."""
    add_ogc_feature_routes(service_server)

    root = resolve({
        "geoviewLayerId": "ogc1",
        "geoviewLayerType": "ogcFeature",
        "metadataAccessPath": f"{service_server.url}/ogc/collections/lakes/items",
    })

    assert root.metadata_access_path == f"{service_server.url}/ogc"
    assert root.status is LayerStatus.LOADED
    (leaf,) = root.list_of_layer_entry_config
    assert leaf.layer_id == "lakes"
    assert leaf.bounds.to_list() == [-100.0, 45.0, -90.0, 50.0]
    assert leaf.geometry_type == "Polygon"
    assert [(f.name, f.alias, f.type) for f in leaf.source.feature_info.outfields] == [
        ("name", "Name", "string"),
        ("area", "area", "number"),
        ("surveyed", "surveyed", "date"),
    ]
    assert leaf.source.data_access_path == f"{service_server.url}/ogc/collections/lakes/items"


def test_vector_tiles_projection_mismatch(service_server):
    """Test vector tiles must use the map projection."""
    path = "/arcgis/rest/services/Basemap/VectorTileServer"
    service_server.add_json(
        path,
        {
            "name": "Basemap",
            "copyrightText": "Basemap provider",
            "defaultStyles": "resources/styles",
            "tiles": ["tile/{z}/{y}/{x}.pbf"],
            "tileInfo": {
                "rows": 512,
                "cols": 512,
                "origin": {"x": -34655800, "y": 38474000},
                "spatialReference": {"wkid": 3978},
                "lods": [{"level": 0, "resolution": 135373.49}, {"level": 1, "resolution": 67686.75}],
            },
        },
        query={"f": "json"},
    )
    config = {
        "geoviewLayerId": "tiles1",
        "geoviewLayerType": "vectorTiles",
        "metadataAccessPath": f"{service_server.url}{path}/tile/{{z}}/{{y}}/{{x}}.pbf",
    }

    mismatch = resolve(config, map_projection=3857)

    (leaf,) = mismatch.list_of_layer_entry_config
    assert leaf.status is LayerStatus.ERROR
    assert isinstance(leaf.error, ProjectionMismatchError)

    matching = resolve(config, map_projection=3978)

    (leaf,) = matching.list_of_layer_entry_config
    assert matching.metadata_access_path == f"{service_server.url}{path}"
    assert leaf.status is LayerStatus.LOADED
    assert leaf.layer_id == "Basemap"
    assert leaf.source.projection == 3978
    assert leaf.source.tile_grid["tileSize"] == [512, 512]
    assert leaf.source.tile_grid["resolutions"] == [135373.49, 67686.75]
    assert leaf.source.data_access_path == f"{service_server.url}{path}/tile/{{z}}/{{y}}/{{x}}.pbf"
    assert leaf.source.style_url == f"{service_server.url}{path}/resources/styles/root.json"
    assert leaf.attributions == ["Basemap provider"]


def test_xyz_template_needs_no_request():
    """Test an XYZ template resolves without any metadata request."""
    template = "http://127.0.0.1:1/tiles/{z}/{x}/{y}.png"

    root = resolve({
        "geoviewLayerId": "xyz1",
        "geoviewLayerName": "Tiles",
        "geoviewLayerType": "xyzTiles",
        "metadataAccessPath": template,
    })

    assert root.status is LayerStatus.LOADED
    (leaf,) = root.list_of_layer_entry_config
    assert leaf.layer_id == "0"
    assert leaf.layer_name["en"] == "Tiles"
    assert leaf.source.data_access_path == template


def test_geocore_record(service_server):
    """Test a GeoCore record retargets the root to the layer it describes."""
    add_ogc_feature_routes(service_server)
    service_server.add_json(
        "/geocore/vcs",
        {
            "reponse": {
                "rcs": {
                    "en": [
                        {
                            "layers": [
                                {
                                    "layerType": "ogcFeature",
                                    "url": f"{service_server.url}/ogc",
                                    "name": "Lakes record",
                                    "isTimeAware": False,
                                    "layerEntries": [{"id": "lakes"}],
                                }
                            ]
                        }
                    ]
                }
            }
        },
        query={"id": GEOCORE_UUID, "lang": "en"},
    )

    root = resolve(
        {"geoviewLayerId": GEOCORE_UUID, "geoviewLayerType": "geoCore"},
        geocore_url=f"{service_server.url}/geocore",
    )

    assert root.is_geocore
    assert root.geoview_layer_type == "ogcFeature"
    assert root.metadata_access_path == f"{service_server.url}/ogc"
    assert root.geoview_layer_name["en"] == "Lakes record"
    assert not root.is_time_aware
    assert root.status is LayerStatus.LOADED
    (leaf,) = root.list_of_layer_entry_config
    assert leaf.get_path() == f"{GEOCORE_UUID}/lakes"
    assert leaf.status is LayerStatus.LOADED


def test_geocore_errors(service_server):
    """Test GeoCore records without layers or with unknown types fail the root."""
    service_server.add_json("/geocore/vcs", {"errorMessage": "Record not found"}, query={"lang": "en"})

    root = resolve(
        {"geoviewLayerId": GEOCORE_UUID, "geoviewLayerType": "geoCore"},
        geocore_url=f"{service_server.url}/geocore",
    )
    assert isinstance(root.error, ServiceMetadataError)
    assert "Record not found" in str(root.error)

    service_server.add_json(
        "/geocore/vcs",
        {"reponse": {"rcs": {"en": [{"layers": [{"layerType": "shapefile", "url": "http://x"}]}]}}},
        query={"lang": "en"},
    )
    root = resolve(
        {"geoviewLayerId": GEOCORE_UUID, "geoviewLayerType": "geoCore"},
        geocore_url=f"{service_server.url}/geocore",
    )
    assert isinstance(root.error, ServiceMetadataError)
    assert root.error.params == ["shapefile"]

    root = resolve({"geoviewLayerId": "not-a-uuid", "geoviewLayerType": "geoCore"})
    assert isinstance(root.error, ConfigIntegrityError)
