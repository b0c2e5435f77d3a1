"""Initial settings model (controls and states of a layer)."""

import copy
from dataclasses import dataclass, field
from typing import Any

from geoview_config.core.config import DEFAULT_INITIAL_SETTINGS
from geoview_config.utils.merge import deep_merge


@dataclass(frozen=True)
class InitialSettings:
    """Merged initial settings of a node.

    Instances are immutable; a node re-sets its settings by building a new instance.
    """

    controls: dict[str, bool] = field(default_factory=dict)
    states: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def merge(cls, *layers: dict | None, parent: "InitialSettings | None" = None) -> "InitialSettings":
        """
        Build settings from the defaults (or the parent's settings) and overrides.

        Args:
            *layers: Override mappings, later ones winning
            parent: Settings inherited from the parent node, used instead of the defaults

        Returns:
            Merged settings
        """
        merged = parent.to_dict() if parent is not None else copy.deepcopy(DEFAULT_INITIAL_SETTINGS)
        for overrides in layers:
            merged = deep_merge(merged, overrides)
        return cls.from_dict(merged)

    @classmethod
    def from_dict(cls, data: dict) -> "InitialSettings":
        data = copy.deepcopy(data)
        controls = data.pop("controls", {}) or {}
        states = data.pop("states", {}) or {}
        return cls(controls=controls, states=states, extra=data)

    def to_dict(self) -> dict:
        result = copy.deepcopy(self.extra)
        result["controls"] = copy.deepcopy(self.controls)
        result["states"] = copy.deepcopy(self.states)
        return result

    @property
    def visible(self) -> bool:
        return bool(self.states.get("visible", True))

    @property
    def queryable(self) -> bool:
        return bool(self.states.get("queryable", False))
