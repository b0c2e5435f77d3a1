"""Base class for protocol resolvers."""

from typing import TYPE_CHECKING

from geoview_config.core.config import LAYER_TYPES, EntryKind, LayerTypeInfo
from geoview_config.core.exceptions import ServiceMetadataError
from geoview_config.core.fetcher import FetchResult
from geoview_config.models.nodes import ConfigNode, LeafLayerConfig
from geoview_config.utils.xml_json import as_list, parse_xml, text_of

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

EXCEPTION_REPORTS = ("ServiceExceptionReport", "ExceptionReport")


class LayerResolver:
    """Protocol-specific behaviour of one geoview layer type.

    A resolver is stateless; everything it reads or writes lives on the root
    config and its nodes. Subclasses override the hooks they need:

    - normalize: adjust the access path / entries before the tree is built
    - fetch_service_metadata: the single service-level request
    - synthesize_tree: derive nodes from the service metadata
    - resolve_leaf: fetch and apply one leaf's own metadata
    """

    # Whether declared entry ids must exist in the metadata layer tree
    validates_entry_ids = False

    def __init__(self, layer_type: str):
        self.info: LayerTypeInfo = LAYER_TYPES[layer_type]

    def get_type_name(self) -> str:
        return self.info.name

    def get_display_name(self) -> str:
        return self.info.display_name

    @property
    def entry_kind(self) -> EntryKind:
        return self.info.entry_kind

    def normalize(self, root: "GeoviewLayerConfig") -> None:
        """Adjust the root's access path and entry configuration (must be idempotent)."""

    async def fetch_service_metadata(self, root: "GeoviewLayerConfig") -> FetchResult:
        """
        Fetch the service level metadata.

        The default suits formats without service metadata and performs no request.

        Returns:
            FetchResult holding the metadata
        """
        return FetchResult(root.metadata_access_path, data={})

    def synthesize_tree(self, root: "GeoviewLayerConfig") -> list[ConfigNode]:
        """
        Build nodes from the service metadata alone.

        This is a pure function of the fetched metadata and never suspends.

        Returns:
            Detached top-level nodes (may be empty)
        """
        return []

    async def resolve_leaf(self, root: "GeoviewLayerConfig", leaf: LeafLayerConfig) -> None:
        """
        Fetch and apply one leaf's metadata.

        Raises:
            GeoviewConfigError: If the leaf cannot be resolved
        """

    async def fetch_xml(self, root: "GeoviewLayerConfig", url: str) -> FetchResult:
        """
        Fetch an XML document and convert it in the worker pool.

        The raw bytes are parsed so the document's own encoding declaration
        applies. OGC exception reports are returned as ServiceMetadataError.

        Returns:
            FetchResult holding the converted root element
        """
        result = await root.context.client.fetch_bytes(url)
        if not result.ok:
            return result

        try:
            tag, document = await root.context.run_in_worker(parse_xml, result.data)
        except ServiceMetadataError as e:
            return FetchResult(url, error=e)

        if tag in EXCEPTION_REPORTS:
            exceptions = as_list(document.get("ServiceException") or document.get("Exception"))
            exception = exceptions[0] if exceptions else None
            if isinstance(exception, dict) and "ExceptionText" in exception:
                exception = exception["ExceptionText"]
            details = text_of(exception) or tag
            return FetchResult(
                url, error=ServiceMetadataError(f"Service exception from {url}: {details}", params=[url, details])
            )
        return FetchResult(url, data=document)

    def create_leaf(self, layer_id, layer_name=None, geometry_type: str | None = None) -> LeafLayerConfig:
        """Create a detached leaf of this resolver's layer type."""
        return LeafLayerConfig(
            layer_id,
            entry_kind=self.entry_kind,
            layer_type=self.info.name,
            layer_name=layer_name,
            geometry_type=geometry_type,
        )
