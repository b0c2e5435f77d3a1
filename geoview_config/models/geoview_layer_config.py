"""Root layer configuration: one service endpoint and its tree of entries."""

import asyncio
import copy
import logging
from typing import Callable, Iterator, Optional

from geoview_config.core.config import DEFAULT_SERVICE_DATE_FORMAT
from geoview_config.core.context import ResolutionContext
from geoview_config.core.exceptions import (
    ConfigIntegrityError,
    EmptyLayerGroupError,
    GeoviewConfigError,
    LayerIdNotFoundError,
    ResolutionCancelledError,
    ServiceMetadataError,
)
from geoview_config.models.initial_settings import InitialSettings
from geoview_config.models.layer_status import LayerStatus, all_at_least
from geoview_config.models.nodes import ConfigNode, GroupLayerConfig, LeafLayerConfig, node_from_dict
from geoview_config.resolvers import get_resolver
from geoview_config.utils.localized import normalize_localized

logger = logging.getLogger(__name__)

LayerStatusListener = Callable[[ConfigNode, LayerStatus, LayerStatus], None]


class GeoviewLayerConfig:
    """Root of a layer configuration tree.

    The constructor performs no network access. ``fetch_service_metadata()``
    fetches the service metadata, synthesizes the layer tree when no entries
    were given and resolves every leaf concurrently. Failures never raise: they
    are recorded on the nodes and in the sticky ``error_detected`` flag.
    """

    def __init__(
        self,
        geoview_layer_id,
        geoview_layer_name,
        metadata_access_path: str,
        geoview_layer_type: str,
        context: ResolutionContext | None = None,
        *,
        list_of_layer_entry_config: list[dict] | None = None,
        initial_settings: dict | None = None,
        is_geocore: bool = False,
        is_time_aware: bool = True,
        service_date_format: str | None = None,
        external_date_format: str | None = None,
    ):
        """
        Initialize root config.

        Args:
            geoview_layer_id: Id of the geoview layer (first segment of every layer path)
            geoview_layer_name: Display name (string or language mapping)
            metadata_access_path: Service URL
            geoview_layer_type: Layer type, a key of the resolver registry
            context: Resolution context used by fetch_service_metadata
            list_of_layer_entry_config: Explicit entries; empty or None synthesizes them
            initial_settings: Initial settings inherited by every entry
            is_geocore: Whether the config comes from a GeoCore record
            is_time_aware: Whether time dimensions are read from metadata
            service_date_format: Date format used by the service
            external_date_format: Date format used for display

        Raises:
            ConfigIntegrityError: If the geoview layer id is empty
            UnsupportedLayerTypeError: If the layer type is not registered
        """
        geoview_layer_id = "" if geoview_layer_id is None else str(geoview_layer_id).strip()
        if not geoview_layer_id:
            raise ConfigIntegrityError(
                "Geoview layer config requires a non-empty geoviewLayerId", message_key="validation.layer.id.required"
            )

        self.resolver = get_resolver(geoview_layer_type)
        self.geoview_layer_id = geoview_layer_id
        self.geoview_layer_name = normalize_localized(geoview_layer_name)
        self.geoview_layer_type = geoview_layer_type
        self.metadata_access_path = (metadata_access_path or "").strip()
        self.context = context
        self.is_geocore = is_geocore
        self.is_time_aware = is_time_aware
        self.service_date_format = service_date_format or DEFAULT_SERVICE_DATE_FORMAT
        self.external_date_format = external_date_format
        self.initial_settings = InitialSettings.merge(initial_settings)

        self.status = LayerStatus.NOT_LOADED
        self.error: GeoviewConfigError | None = None
        self.metadata_layer_tree: list[ConfigNode] = []
        self.tree_version = 0

        self._entries_config = copy.deepcopy(list_of_layer_entry_config) if list_of_layer_entry_config else None
        self._entries: list[ConfigNode] = []
        self._service_metadata = None
        self._error_detected = False
        self._build_error: GeoviewConfigError | None = None
        self._layer_listeners: list[LayerStatusListener] = []
        self._fetch_task: Optional[asyncio.Task] = None

        self._configure()

    def __repr__(self):
        return f"GeoviewLayerConfig({self.geoview_layer_id!r}, {self.geoview_layer_type}, status={self.status.value})"

    @classmethod
    def from_dict(cls, data: dict, context: ResolutionContext | None = None) -> "GeoviewLayerConfig":
        """
        Create root config from a geoview layer configuration.

        Raises:
            ConfigIntegrityError: If the geoview layer id is empty
            UnsupportedLayerTypeError: If the layer type is not registered
        """
        return cls(
            data.get("geoviewLayerId"),
            data.get("geoviewLayerName"),
            data.get("metadataAccessPath"),
            data.get("geoviewLayerType"),
            context,
            list_of_layer_entry_config=data.get("listOfLayerEntryConfig"),
            initial_settings=data.get("initialSettings"),
            is_geocore=bool(data.get("isGeocore", False)),
            is_time_aware=bool(data.get("isTimeAware", True)),
            service_date_format=data.get("serviceDateFormat"),
            external_date_format=data.get("externalDateFormat"),
        )

    # Tree ownership

    @property
    def list_of_layer_entry_config(self) -> tuple[ConfigNode, ...]:
        """The entries: authoritative, user-facing tree (direct children of the root)."""
        return tuple(self._entries)

    @property
    def entries_config(self) -> list[dict] | None:
        """Copy of the explicit entry configuration, or None when entries are synthesized."""
        return copy.deepcopy(self._entries_config)

    @entries_config.setter
    def entries_config(self, value: list[dict] | None) -> None:
        self._entries_config = copy.deepcopy(value) if value else None

    @property
    def error_detected(self) -> bool:
        return self._error_detected

    def set_error_detected(self) -> None:
        """Flag an error on this root; the flag is never cleared."""
        self._error_detected = True

    def bump_tree_version(self) -> None:
        self.tree_version += 1

    def add_entry(self, node: ConfigNode) -> ConfigNode:
        """
        Attach a node as a direct entry of this root.

        Raises:
            ConfigIntegrityError: If the node belongs to a tree or duplicates an entry id
        """
        if node.parent is not None or node.root is not None:
            raise ConfigIntegrityError(f"Layer {node.layer_id} already belongs to a tree", params=[node.layer_id])
        if any(entry.layer_id == node.layer_id for entry in self._entries):
            raise ConfigIntegrityError(
                f"Duplicate layer id {node.layer_id} in {self.geoview_layer_id}",
                params=[node.layer_id, self.geoview_layer_id],
                message_key="validation.layer.id.duplicate",
            )
        self._entries.append(node)
        node._attach_root(self)
        self.bump_tree_version()
        return node

    def remove_entry(self, node: ConfigNode) -> None:
        if not any(entry is node for entry in self._entries):
            raise ConfigIntegrityError(f"Layer {node.layer_id} is not an entry of {self.geoview_layer_id}")
        self._entries = [entry for entry in self._entries if entry is not node]
        node._attach_root(None)
        self.bump_tree_version()

    def iter_nodes(self) -> Iterator[ConfigNode]:
        for entry in self._entries:
            yield from entry.iter_nodes()

    def iter_leaves(self) -> Iterator[LeafLayerConfig]:
        for entry in self._entries:
            yield from entry.iter_leaves()

    def find_layer(self, layer_path_or_id: str) -> ConfigNode | None:
        """Find a node by layer path or, failing that, by id."""
        for node in self.iter_nodes():
            if node.get_path() == layer_path_or_id:
                return node
        for node in self.iter_nodes():
            if node.layer_id == layer_path_or_id:
                return node
        return None

    def all_layer_status_at_least(self, status: LayerStatus) -> bool:
        """True if there are entries and every one of them has reached the status."""
        return bool(self._entries) and all_at_least(status, self._entries)

    @property
    def build_error(self) -> GeoviewConfigError | None:
        """Error found while building the entries from their configuration, if any."""
        return self._build_error

    def get_service_metadata(self):
        """Raw service metadata (private to the root, never serialized)."""
        return self._service_metadata

    # Status notification

    def on_layer_status_changed(self, listener: LayerStatusListener) -> None:
        """Register a listener for status changes of any node of this root.

        Root listeners survive a re-fetch, which rebuilds the nodes.
        """
        if listener not in self._layer_listeners:
            self._layer_listeners.append(listener)

    def off_layer_status_changed(self, listener: LayerStatusListener) -> None:
        if listener in self._layer_listeners:
            self._layer_listeners.remove(listener)

    def notify_layer_status(self, node: ConfigNode, previous: LayerStatus, current: LayerStatus) -> None:
        for listener in list(self._layer_listeners):
            try:
                listener(node, previous, current)
            except Exception:
                logger.exception(f"Layer status listener failed for {node.describe()}")

    # Construction

    def _configure(self) -> None:
        """Normalize the access path and build the entry tree from the entry configuration."""
        for entry in list(self._entries):
            self.remove_entry(entry)
        self._build_error = None

        try:
            self.resolver.normalize(self)
            if not self.metadata_access_path:
                raise ConfigIntegrityError(
                    f"Geoview layer {self.geoview_layer_id} requires a metadataAccessPath",
                    params=[self.geoview_layer_id],
                )
            for entry_config in self._entries_config or []:
                self.add_entry(node_from_dict(entry_config, self.geoview_layer_type, self.resolver.info.entry_kind))
        except GeoviewConfigError as e:
            self._record_build_error(e)
        except ValueError as e:
            self._record_build_error(ConfigIntegrityError(f"Invalid layer entry: {e}", params=[self.geoview_layer_id]))

    def _record_build_error(self, error: GeoviewConfigError) -> None:
        logger.error(f"Invalid configuration for {self.geoview_layer_id}: {error}")
        self._build_error = error
        for entry in list(self._entries):
            self.remove_entry(entry)

    def retarget(
        self,
        geoview_layer_type: str,
        metadata_access_path: str,
        list_of_layer_entry_config: list[dict] | None = None,
        geoview_layer_name=None,
    ) -> None:
        """
        Switch this root to another layer type (used by GeoCore indirection).

        Explicit entries already configured on the root are kept.

        Raises:
            UnsupportedLayerTypeError: If the layer type is not registered
        """
        self.resolver = get_resolver(geoview_layer_type)
        self.geoview_layer_type = geoview_layer_type
        self.metadata_access_path = (metadata_access_path or "").strip()
        if self._entries_config is None and list_of_layer_entry_config:
            self._entries_config = copy.deepcopy(list_of_layer_entry_config)
        if not self.geoview_layer_name:
            self.geoview_layer_name = normalize_localized(geoview_layer_name)
        logger.info(f"{self.geoview_layer_id} resolved to {geoview_layer_type}: {self.metadata_access_path}")
        self._configure()

    # Resolution

    async def fetch_service_metadata(self) -> None:
        """
        Fetch service metadata and resolve the whole tree.

        A call made while a fetch is in flight waits for that fetch; a later call
        re-fetches from scratch, rebuilding the entries.

        Raises:
            RuntimeError: If no resolution context was given
            asyncio.CancelledError: If the resolution is cancelled (unfinished nodes are
                marked as errors first)
        """
        if self.context is None:
            raise RuntimeError(f"Geoview layer {self.geoview_layer_id} has no resolution context")

        if self._fetch_task is not None and not self._fetch_task.done():
            logger.debug(f"Metadata fetch already in progress for {self.geoview_layer_id}")
            await self._fetch_task
            return

        self._fetch_task = asyncio.ensure_future(self._resolve())
        await self._fetch_task

    async def _resolve(self) -> None:
        if self.status is not LayerStatus.NOT_LOADED:
            self._reset()

        self.status = LayerStatus.LOADING
        logger.info(
            f"Fetching service metadata for {self.geoview_layer_id} ({self.geoview_layer_type}): "
            f"{self.metadata_access_path}"
        )
        try:
            await self._run_phases()
        except asyncio.CancelledError:
            self._abort(
                ResolutionCancelledError(
                    f"Resolution of {self.geoview_layer_id} was cancelled", params=[self.geoview_layer_id]
                )
            )
            raise

    def _reset(self) -> None:
        logger.debug(f"Resetting {self.geoview_layer_id} for a new metadata fetch")
        self._service_metadata = None
        self.metadata_layer_tree = []
        self.error = None
        self.status = LayerStatus.NOT_LOADED
        self._configure()

    async def _run_phases(self) -> None:
        if self._build_error is not None:
            self._fail(self._build_error)
            return

        # Phase 1: service metadata
        result = await self.resolver.fetch_service_metadata(self)
        if not result.ok:
            self._fail(result.error)
            return
        self._service_metadata = result.data

        # Phase 2: tree shape
        try:
            self._synthesize()
        except GeoviewConfigError as e:
            self._fail(e)
            return
        except ValueError as e:
            self._fail(ServiceMetadataError(f"Invalid service metadata: {e}", params=[self.metadata_access_path]))
            return

        self._check_declared_entries()

        # Phase 3: per-leaf metadata
        await self._fan_out()
        self._finish()

    def _synthesize(self) -> None:
        if self._entries_config is None:
            self.metadata_layer_tree = self.resolver.synthesize_tree(self)
            for node in self.metadata_layer_tree:
                self.add_entry(node)
        else:
            try:
                self.metadata_layer_tree = self.resolver.synthesize_tree(self)
            except GeoviewConfigError as e:
                logger.warning(f"Could not build the metadata layer tree of {self.geoview_layer_id}: {e}")
                self.metadata_layer_tree = []

        if not self._entries:
            raise EmptyLayerGroupError(
                f"Geoview layer {self.geoview_layer_id} has no layer entries", params=[self.geoview_layer_id]
            )

    def _check_declared_entries(self) -> None:
        """Flag declared leaves absent from the service metadata and empty groups."""
        if self._entries_config is not None and self.resolver.validates_entry_ids and self.metadata_layer_tree:
            known = {node.layer_id for tree in self.metadata_layer_tree for node in tree.iter_nodes()}
            for leaf in list(self.iter_leaves()):
                if leaf.layer_id not in known:
                    leaf.set_error(
                        LayerIdNotFoundError(
                            f"Layer {leaf.layer_id} not found in the service metadata of {self.metadata_access_path}",
                            params=[leaf.get_path()],
                        )
                    )

        for node in list(self.iter_nodes()):
            if isinstance(node, GroupLayerConfig) and not node.children:
                node.update_status_from_children()

    async def _fan_out(self) -> None:
        leaves = [leaf for leaf in self.iter_leaves() if leaf.status is not LayerStatus.ERROR]
        logger.debug(f"Resolving {len(leaves)} layer(s) of {self.geoview_layer_id}")

        results = await asyncio.gather(*(self._resolve_leaf(leaf) for leaf in leaves), return_exceptions=True)

        for leaf, result in zip(leaves, results):
            if not isinstance(result, BaseException) or leaf.status.is_terminal:
                continue
            if isinstance(result, asyncio.CancelledError):
                leaf.set_error(ResolutionCancelledError(f"Resolution of {leaf.describe()} was cancelled"))
            else:
                logger.error(f"Unexpected error resolving {leaf.describe()}: {result!r}")
                leaf.set_error(
                    GeoviewConfigError(f"Unexpected error resolving {leaf.layer_id}: {result}", params=[leaf.describe()])
                )

    async def _resolve_leaf(self, leaf: LeafLayerConfig) -> None:
        leaf.set_status(LayerStatus.LOADING)
        try:
            await self.resolver.resolve_leaf(self, leaf)
        except GeoviewConfigError as e:
            leaf.set_error(e)
            return
        except ValueError as e:
            leaf.set_error(ServiceMetadataError(f"Invalid metadata for {leaf.describe()}: {e}", params=[leaf.describe()]))
            return
        leaf.set_status(LayerStatus.PROCESSED)
        leaf.set_status(LayerStatus.LOADED)

    def _finish(self) -> None:
        leaves = list(self.iter_leaves())
        loaded = sum(1 for leaf in leaves if leaf.status is LayerStatus.LOADED)
        if self._entries and all(entry.status is LayerStatus.LOADED for entry in self._entries):
            self.status = LayerStatus.LOADED
        else:
            self.status = LayerStatus.ERROR
            self.set_error_detected()

        message = f"Resolved {self.geoview_layer_id}: {loaded}/{len(leaves)} layer(s) loaded"
        if self.error_detected:
            logger.warning(f"{message}, errors detected")
        else:
            logger.info(message)

    def _fail(self, error: GeoviewConfigError) -> None:
        """Record a root level failure on every node of the tree."""
        logger.error(f"Failed to resolve {self.geoview_layer_id} [{error.message_key}]: {error}")
        self.error = error
        self.status = LayerStatus.ERROR
        self.set_error_detected()
        for node in list(self.iter_nodes()):
            if node.status is not LayerStatus.ERROR:
                node.set_error(error)

    def _abort(self, error: ResolutionCancelledError) -> None:
        logger.warning(f"{error}")
        for node in list(self.iter_nodes()):
            if not node.status.is_terminal:
                node.set_error(error)
        if not self.status.is_terminal:
            self.error = error
            self.status = LayerStatus.ERROR
        self.set_error_detected()

    # Serialization

    def to_dict(self) -> dict:
        result = {
            "geoviewLayerId": self.geoview_layer_id,
            "geoviewLayerType": self.geoview_layer_type,
            "metadataAccessPath": self.metadata_access_path,
            "isGeocore": self.is_geocore,
            "isTimeAware": self.is_time_aware,
            "serviceDateFormat": self.service_date_format,
            "initialSettings": self.initial_settings.to_dict(),
            "listOfLayerEntryConfig": [entry.to_dict() for entry in self._entries],
        }
        if self.geoview_layer_name:
            result["geoviewLayerName"] = dict(self.geoview_layer_name)
        if self.external_date_format:
            result["externalDateFormat"] = self.external_date_format
        return result
