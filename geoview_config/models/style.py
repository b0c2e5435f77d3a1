"""Layer style model."""

import copy
from dataclasses import dataclass, field
from typing import Any

STYLE_TYPES = ("simple", "uniqueValue", "classBreaks")
GEOMETRY_TYPES = ("Point", "LineString", "Polygon")


@dataclass
class StyleInfo:
    """One class of a style: a label, the values it matches and its symbol settings."""

    label: str
    settings: dict[str, Any]
    values: list[Any] = field(default_factory=list)
    visible: bool = True

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "visible": self.visible,
            "values": list(self.values),
            "settings": copy.deepcopy(self.settings),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StyleInfo":
        return cls(
            label=data.get("label", ""),
            settings=copy.deepcopy(data.get("settings", {})),
            values=list(data.get("values", [])),
            visible=bool(data.get("visible", True)),
        )


@dataclass
class GeometryStyle:
    """Style applied to one geometry type."""

    type: str
    info: list[StyleInfo]
    fields: list[str] = field(default_factory=list)
    has_default: bool = False

    def __post_init__(self):
        """Validate style type."""
        if self.type not in STYLE_TYPES:
            raise ValueError(f"Style type must be one of {STYLE_TYPES}, got {self.type}")

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "fields": list(self.fields),
            "hasDefault": self.has_default,
            "info": [i.to_dict() for i in self.info],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GeometryStyle":
        return cls(
            type=data["type"],
            info=[StyleInfo.from_dict(i) for i in data.get("info", [])],
            fields=list(data.get("fields", [])),
            has_default=bool(data.get("hasDefault", False)),
        )


@dataclass
class StyleConfig:
    """Styles of a layer keyed by geometry type."""

    styles: dict[str, GeometryStyle] = field(default_factory=dict)

    def __post_init__(self):
        """Validate geometry keys."""
        for geometry in self.styles:
            if geometry not in GEOMETRY_TYPES:
                raise ValueError(f"Style geometry must be one of {GEOMETRY_TYPES}, got {geometry}")

    def get(self, geometry_type: str) -> GeometryStyle | None:
        return self.styles.get(geometry_type)

    def to_dict(self) -> dict:
        return {geometry: style.to_dict() for geometry, style in self.styles.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "StyleConfig":
        return cls(styles={geometry: GeometryStyle.from_dict(style) for geometry, style in data.items()})
