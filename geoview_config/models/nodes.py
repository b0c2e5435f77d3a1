"""Configuration tree nodes: leaf layers and layer groups.

A node exclusively owns its children (groups only). Parent and root links are
weak back-references used for path computation and error propagation; the tree
is owned top-down by its GeoviewLayerConfig.
"""

import copy
import logging
import uuid
import weakref
from typing import TYPE_CHECKING, Callable, Iterator, Optional

from geoview_config.core.config import EntryKind
from geoview_config.core.exceptions import (
    ConfigIntegrityError,
    EmptyLayerGroupError,
    GeoviewConfigError,
    LayerStatusError,
    UnsupportedGeometryTypeError,
)
from geoview_config.models.extent import Extent
from geoview_config.models.initial_settings import InitialSettings
from geoview_config.models.layer_status import LayerStatus
from geoview_config.models.source import SourceDescriptor, source_from_dict
from geoview_config.models.style import GEOMETRY_TYPES, StyleConfig
from geoview_config.models.time_dimension import TimeDimension
from geoview_config.utils.localized import normalize_localized
from geoview_config.utils.merge import deep_merge

if TYPE_CHECKING:
    from geoview_config.models.geoview_layer_config import GeoviewLayerConfig

logger = logging.getLogger(__name__)

StatusListener = Callable[["ConfigNode", LayerStatus, LayerStatus], None]


def generate_id() -> str:
    """Opaque id for a group synthesized from service metadata."""
    return uuid.uuid4().hex


class ConfigNode:
    """Common contract of every node of a layer configuration tree."""

    entry_kind: EntryKind

    def __init__(self, layer_id, layer_name=None, initial_settings: dict | None = None):
        """
        Initialize node.

        Args:
            layer_id: Id of the node, unique among its siblings
            layer_name: Display name (string or language mapping)
            initial_settings: Initial settings overrides for this node

        Raises:
            ConfigIntegrityError: If the id is empty
        """
        layer_id = "" if layer_id is None else str(layer_id).strip()
        if not layer_id:
            raise ConfigIntegrityError(
                "Layer entry requires a non-empty layerId", message_key="validation.layer.id.required"
            )

        self.layer_id = layer_id
        self.layer_name = normalize_localized(layer_name)
        self.status = LayerStatus.NOT_LOADED
        self.error: GeoviewConfigError | None = None
        self.error_detected = False

        self._settings_overrides = copy.deepcopy(initial_settings or {})
        self._metadata_settings: dict = {}
        self.initial_settings = InitialSettings.merge(self._settings_overrides)

        self._parent_ref: Optional[weakref.ref] = None
        self._root_ref: Optional[weakref.ref] = None
        self._path_cache: tuple[int, str] | None = None
        self._listeners: list[StatusListener] = []

    def __repr__(self):
        return f"{type(self).__name__}({self.layer_id!r}, status={self.status.value})"

    @property
    def parent(self) -> Optional["GroupLayerConfig"]:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def root(self) -> Optional["GeoviewLayerConfig"]:
        return self._root_ref() if self._root_ref is not None else None

    @property
    def is_group(self) -> bool:
        return self.entry_kind is EntryKind.GROUP

    @property
    def error_reason(self):
        """ErrorKind of the recorded error, if any."""
        return self.error.kind if self.error is not None else None

    def get_path(self) -> str:
        """
        Get the layer path ``rootId/parentId/.../layerId``.

        The path is cached until the owning tree is mutated.

        Returns:
            Layer path

        Raises:
            ConfigIntegrityError: If the node is not attached to a root config
        """
        root = self.root
        if root is None:
            raise ConfigIntegrityError(
                f"Layer {self.layer_id} is not attached to a geoview layer config", params=[self.layer_id]
            )
        if self._path_cache is not None and self._path_cache[0] == root.tree_version:
            return self._path_cache[1]

        ids = []
        node = self
        while node is not None:
            ids.append(node.layer_id)
            node = node.parent
        path = "/".join([root.geoview_layer_id, *reversed(ids)])
        self._path_cache = (root.tree_version, path)
        return path

    def describe(self) -> str:
        """Path if attached, otherwise the bare id (for log messages)."""
        return self.get_path() if self.root is not None else self.layer_id

    def _attach_root(self, root: Optional["GeoviewLayerConfig"]) -> None:
        self._root_ref = weakref.ref(root) if root is not None else None
        self._path_cache = None
        self._refresh_settings()

    def _inherited_settings(self) -> InitialSettings | None:
        parent = self.parent
        if parent is not None:
            return parent.initial_settings
        root = self.root
        if root is not None:
            return root.initial_settings
        return None

    def _refresh_settings(self) -> None:
        self.initial_settings = InitialSettings.merge(
            self._metadata_settings, self._settings_overrides, parent=self._inherited_settings()
        )

    def set_initial_settings(self, overrides: dict) -> None:
        """
        Explicitly re-set initial settings.

        Args:
            overrides: Settings merged over the current overrides
        """
        self._settings_overrides = deep_merge(self._settings_overrides, overrides)
        self._refresh_settings()

    def apply_metadata_settings(self, settings: dict) -> None:
        """Apply settings read from service metadata; user overrides still win."""
        self._metadata_settings = deep_merge(self._metadata_settings, settings)
        self._refresh_settings()

    def on_status_changed(self, listener: StatusListener) -> None:
        """Register a listener called with (node, previous, current) on every status change."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def off_status_changed(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, previous: LayerStatus, current: LayerStatus) -> None:
        for listener in list(self._listeners):
            try:
                listener(self, previous, current)
            except Exception:
                logger.exception(f"Status listener failed for {self.describe()}")
        root = self.root
        if root is not None:
            root.notify_layer_status(self, previous, current)

    def set_status(self, status: LayerStatus) -> bool:
        """
        Apply a status transition.

        Setting the current status is a no-op; a regression along the success
        order is logged and ignored.

        Args:
            status: Next status

        Returns:
            True if the status changed

        Raises:
            LayerStatusError: If the node is in error (only a rebuilt tree leaves it)
        """
        previous = self.status
        if status is previous:
            return False
        if previous is LayerStatus.ERROR:
            raise LayerStatusError(
                f"Layer {self.describe()} is in error and cannot become {status.value}",
                params=[self.describe(), status.value],
            )
        if status is not LayerStatus.ERROR and status.rank < previous.rank:
            logger.debug(f"Ignoring status regression of {self.describe()}: {previous.value} -> {status.value}")
            return False

        self.status = status
        logger.debug(f"{self.describe()}: {previous.value} -> {status.value}")
        self._notify(previous, status)

        parent = self.parent
        if parent is not None:
            parent.update_status_from_children()
        return True

    def is_at_least(self, status: LayerStatus) -> bool:
        return self.status.is_at_least(status)

    def set_error(self, error: GeoviewConfigError) -> None:
        """
        Record an error, move to the error status and propagate it upward.

        Args:
            error: Error to record
        """
        if self.status is LayerStatus.ERROR:
            return
        self.error = error
        logger.warning(f"Layer {self.describe()} failed [{error.message_key}]: {error}")
        self.propagate_error()
        self.set_status(LayerStatus.ERROR)

    def propagate_error(self) -> None:
        """Acknowledge an error on this node, its ancestors and the root; siblings are untouched."""
        self.error_detected = True
        parent = self.parent
        while parent is not None:
            parent.error_detected = True
            parent = parent.parent
        root = self.root
        if root is not None:
            root.set_error_detected()

    def iter_nodes(self) -> Iterator["ConfigNode"]:
        """This node and its descendants, parents before children."""
        yield self

    def iter_leaves(self) -> Iterator["LeafLayerConfig"]:
        return iter(())

    def _base_dict(self) -> dict:
        result = {
            "layerId": self.layer_id,
            "entryType": self.entry_kind.value,
            "initialSettings": self.initial_settings.to_dict(),
        }
        if self.layer_name:
            result["layerName"] = dict(self.layer_name)
        return result

    def to_dict(self) -> dict:
        raise NotImplementedError


class LeafLayerConfig(ConfigNode):
    """Terminal node describing one renderable layer."""

    def __init__(
        self,
        layer_id,
        entry_kind: EntryKind,
        layer_type: str,
        layer_name=None,
        initial_settings: dict | None = None,
        source: SourceDescriptor | None = None,
        layer_style: StyleConfig | None = None,
        layer_filter: str | None = None,
        temporal_dimension: TimeDimension | None = None,
        geometry_type: str | None = None,
        min_scale: float | None = None,
        max_scale: float | None = None,
        bounds: Extent | None = None,
        attributions: list[str] | None = None,
    ):
        """
        Initialize leaf layer.

        Args:
            layer_id: Id of the layer in its service
            entry_kind: Leaf entry kind (never GROUP)
            layer_type: Geoview layer type of the owning root
            layer_name: Display name
            initial_settings: Initial settings overrides
            source: Source descriptor (defaults to the variant matching layer_type)
            layer_style: Style per geometry type
            layer_filter: Filter expression
            temporal_dimension: Time dimension
            geometry_type: 'Point', 'LineString' or 'Polygon'
            min_scale: Minimum scale denominator
            max_scale: Maximum scale denominator
            bounds: Lon/lat bounds
            attributions: Attribution strings

        Raises:
            ConfigIntegrityError: If entry_kind is GROUP
            UnsupportedGeometryTypeError: If geometry_type is not a known geometry
        """
        if entry_kind is EntryKind.GROUP:
            raise ConfigIntegrityError(f"Leaf layer {layer_id} cannot have the group entry kind", params=[layer_id])
        if geometry_type is not None and geometry_type not in GEOMETRY_TYPES:
            raise UnsupportedGeometryTypeError(f"Unsupported geometry type: {geometry_type}", params=[geometry_type])

        super().__init__(layer_id, layer_name, initial_settings)
        self.entry_kind = entry_kind
        self.layer_type = layer_type
        self.source = source if source is not None else source_from_dict(layer_type, None)
        self.layer_style = layer_style
        self.layer_filter = layer_filter
        self.temporal_dimension = temporal_dimension
        self.geometry_type = geometry_type
        self.min_scale = min_scale
        self.max_scale = max_scale
        self.bounds = bounds
        self.attributions = list(attributions or [])

        # Raw per-layer metadata, never serialized
        self.layer_metadata: dict | None = None

    def iter_leaves(self) -> Iterator["LeafLayerConfig"]:
        yield self

    def to_dict(self) -> dict:
        result = self._base_dict()
        result["source"] = self.source.to_dict()
        optional = {
            "layerStyle": self.layer_style.to_dict() if self.layer_style is not None else None,
            "layerFilter": self.layer_filter,
            "temporalDimension": self.temporal_dimension.to_dict() if self.temporal_dimension is not None else None,
            "geometryType": self.geometry_type,
            "minScale": self.min_scale,
            "maxScale": self.max_scale,
            "bounds": self.bounds.to_list() if self.bounds is not None else None,
            "attributions": list(self.attributions) or None,
        }
        result.update({key: value for key, value in optional.items() if value is not None})
        return result

    @classmethod
    def from_dict(cls, data: dict, layer_type: str, entry_kind: EntryKind) -> "LeafLayerConfig":
        """
        Create leaf from an entry configuration.

        Raises:
            ConfigIntegrityError: If the entry is missing its id
            ValueError: If a nested value is malformed
        """
        style = data.get("layerStyle")
        time_dimension = data.get("temporalDimension")
        bounds = data.get("bounds")
        return cls(
            layer_id=data.get("layerId"),
            entry_kind=entry_kind,
            layer_type=layer_type,
            layer_name=data.get("layerName"),
            initial_settings=data.get("initialSettings"),
            source=source_from_dict(layer_type, data.get("source")),
            layer_style=StyleConfig.from_dict(style) if style else None,
            layer_filter=data.get("layerFilter"),
            temporal_dimension=TimeDimension.from_dict(time_dimension) if time_dimension else None,
            geometry_type=data.get("geometryType"),
            min_scale=data.get("minScale"),
            max_scale=data.get("maxScale"),
            bounds=Extent.from_list(bounds) if bounds else None,
            attributions=data.get("attributions"),
        )


class GroupLayerConfig(ConfigNode):
    """Node whose only content is an ordered set of child nodes."""

    entry_kind = EntryKind.GROUP

    def __init__(self, layer_id, layer_name=None, initial_settings: dict | None = None, is_metadata_layer_group: bool = False):
        super().__init__(layer_id, layer_name, initial_settings)
        self.is_metadata_layer_group = is_metadata_layer_group
        self._children: list[ConfigNode] = []

    @property
    def children(self) -> tuple[ConfigNode, ...]:
        return tuple(self._children)

    def add_child(self, child: ConfigNode) -> ConfigNode:
        """
        Append a child node.

        Args:
            child: Detached node

        Returns:
            The added child

        Raises:
            ConfigIntegrityError: If the child already belongs to a tree, would create
                a cycle, or duplicates a sibling id
        """
        if child.parent is not None or child.root is not None:
            raise ConfigIntegrityError(f"Layer {child.layer_id} already belongs to a tree", params=[child.layer_id])
        node = self
        while node is not None:
            if node is child:
                raise ConfigIntegrityError(f"Layer {child.layer_id} cannot contain itself", params=[child.layer_id])
            node = node.parent
        if any(c.layer_id == child.layer_id for c in self._children):
            raise ConfigIntegrityError(
                f"Duplicate layer id {child.layer_id} in group {self.layer_id}",
                params=[child.layer_id, self.layer_id],
                message_key="validation.layer.id.duplicate",
            )

        self._children.append(child)
        child._parent_ref = weakref.ref(self)
        child._attach_root(self.root)
        root = self.root
        if root is not None:
            root.bump_tree_version()
        return child

    def remove_child(self, child: ConfigNode) -> None:
        """
        Detach a child node.

        Raises:
            ConfigIntegrityError: If the node is not a child of this group
        """
        if not any(c is child for c in self._children):
            raise ConfigIntegrityError(
                f"Layer {child.layer_id} is not a child of {self.layer_id}", params=[child.layer_id, self.layer_id]
            )
        self._children = [c for c in self._children if c is not child]
        child._parent_ref = None
        child._attach_root(None)
        root = self.root
        if root is not None:
            root.bump_tree_version()

    def _attach_root(self, root: Optional["GeoviewLayerConfig"]) -> None:
        super()._attach_root(root)
        for child in self._children:
            child._attach_root(root)

    def _refresh_settings(self) -> None:
        super()._refresh_settings()
        for child in self._children:
            child._refresh_settings()

    def find(self, layer_id: str) -> ConfigNode | None:
        """Find a descendant by id (depth first)."""
        for node in self.iter_nodes():
            if node is not self and node.layer_id == layer_id:
                return node
        return None

    def iter_nodes(self) -> Iterator[ConfigNode]:
        yield self
        for child in self._children:
            yield from child.iter_nodes()

    def iter_leaves(self) -> Iterator[LeafLayerConfig]:
        for child in self._children:
            yield from child.iter_leaves()

    def update_status_from_children(self) -> None:
        """
        Derive the group status from its children.

        All children loaded gives LOADED; all children settled with at least one
        error gives ERROR; otherwise the group follows its least advanced child,
        an errored child counting as LOADING. An empty group is an error.
        """
        if self.status is LayerStatus.ERROR:
            return
        if not self._children:
            self.set_error(EmptyLayerGroupError(f"Layer group {self.describe()} has no layers", params=[self.describe()]))
            return

        statuses = [child.status for child in self._children]
        if all(s is LayerStatus.LOADED for s in statuses):
            self.set_status(LayerStatus.LOADED)
            return
        if all(s.is_terminal for s in statuses):
            failed = [child.layer_id for child in self._children if child.status is LayerStatus.ERROR]
            self.set_error(
                GeoviewConfigError(
                    f"Layer group {self.describe()} has layers in error: {', '.join(failed)}",
                    params=[self.describe(), failed],
                )
            )
            return

        effective = [LayerStatus.LOADING if s is LayerStatus.ERROR else s for s in statuses]
        target = min(effective, key=lambda s: s.rank)
        if target is LayerStatus.NOT_LOADED and any(s is not LayerStatus.NOT_LOADED for s in statuses):
            target = LayerStatus.LOADING
        self.set_status(target)

    def to_dict(self) -> dict:
        result = self._base_dict()
        if self.is_metadata_layer_group:
            result["isMetadataLayerGroup"] = True
        result["listOfLayerEntryConfig"] = [child.to_dict() for child in self._children]
        return result


def node_from_dict(data: dict, layer_type: str, entry_kind: EntryKind) -> ConfigNode:
    """
    Build a node (and its descendants) from an entry configuration.

    An entry with ``listOfLayerEntryConfig`` or ``entryType: group`` is a group;
    every other entry is a leaf of the layer type's entry kind.

    Args:
        data: Entry configuration
        layer_type: Geoview layer type of the owning root
        entry_kind: Leaf entry kind of the layer type

    Returns:
        Detached node

    Raises:
        ConfigIntegrityError: If an id is missing or duplicated
        ValueError: If a nested value is malformed
    """
    if not isinstance(data, dict):
        raise ConfigIntegrityError(f"Layer entry must be an object, got {type(data).__name__}")

    if "listOfLayerEntryConfig" in data or data.get("entryType") == EntryKind.GROUP.value:
        group = GroupLayerConfig(
            data.get("layerId"),
            layer_name=data.get("layerName"),
            initial_settings=data.get("initialSettings"),
            is_metadata_layer_group=bool(data.get("isMetadataLayerGroup", False)),
        )
        for child in data.get("listOfLayerEntryConfig") or []:
            group.add_child(node_from_dict(child, layer_type, entry_kind))
        return group

    return LeafLayerConfig.from_dict(data, layer_type, entry_kind)
