"""Temporal dimension of time aware layers."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _iso_from_epoch_ms(value: int | float) -> str:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class TimeDimension:
    """Time range a layer can be filtered on."""

    field_name: str
    range: list[str]
    default: list[str] = field(default_factory=list)
    unit_symbol: str = ""
    nearest_values: str = "discrete"  # 'discrete' or 'continuous'
    single_handle: bool = True

    def __post_init__(self):
        """Validate time dimension."""
        if not self.range:
            raise ValueError("Time dimension requires at least one value in its range")
        if self.nearest_values not in ("discrete", "continuous"):
            raise ValueError(f"nearest_values must be 'discrete' or 'continuous', got {self.nearest_values}")
        if not self.default:
            self.default = [self.range[0]] if self.single_handle else [self.range[0], self.range[-1]]

    @classmethod
    def from_esri_time_info(cls, time_info: dict, single_handle: bool = False) -> "TimeDimension":
        """
        Create time dimension from an ESRI ``timeInfo`` object.

        Args:
            time_info: ESRI timeInfo (``startTimeField``, ``timeExtent`` in epoch ms, ``timeInterval``)
            single_handle: Whether the time slider has a single handle (image services)

        Returns:
            TimeDimension

        Raises:
            ValueError: If the time extent is missing
        """
        time_extent = [v for v in (time_info.get("timeExtent") or []) if v is not None]
        if not time_extent:
            raise ValueError("ESRI timeInfo has no timeExtent")

        time_range = [_iso_from_epoch_ms(v) for v in time_extent]
        return cls(
            field_name=time_info.get("startTimeField") or "",
            range=time_range,
            nearest_values="discrete" if time_info.get("timeInterval") else "continuous",
            single_handle=single_handle,
        )

    @classmethod
    def from_wms_dimension(cls, dimension: dict) -> "TimeDimension":
        """
        Create time dimension from a WMS capabilities ``Dimension`` element.

        Values are either a comma separated list (discrete) or ``start/end[/period]``
        intervals; an interval without a period is continuous.

        Args:
            dimension: Converted Dimension element (``name``, ``default``, ``value``)

        Returns:
            TimeDimension

        Raises:
            ValueError: If the dimension carries no values
        """
        text = (dimension.get("value") or "").strip()
        values = [v.strip() for v in text.split(",") if v.strip()]
        if not values:
            raise ValueError(f"WMS dimension {dimension.get('name')} has no values")

        nearest_values = "discrete"
        if len(values) == 1 and "/" in values[0]:
            parts = values[0].split("/")
            values = parts[:2]
            if len(parts) < 3 or not parts[2]:
                nearest_values = "continuous"

        default = dimension.get("default")
        return cls(
            field_name=dimension.get("name", "time"),
            range=values,
            default=[default] if default else [],
            unit_symbol=dimension.get("unitSymbol", "") or "",
            nearest_values=nearest_values,
            single_handle=True,
        )

    def to_dict(self) -> dict:
        return {
            "field": self.field_name,
            "range": list(self.range),
            "default": list(self.default),
            "unitSymbol": self.unit_symbol,
            "nearestValues": self.nearest_values,
            "singleHandle": self.single_handle,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimeDimension":
        return cls(
            field_name=data.get("field", ""),
            range=list(data.get("range", [])),
            default=list(data.get("default", [])),
            unit_symbol=data.get("unitSymbol", ""),
            nearest_values=data.get("nearestValues", "discrete"),
            single_handle=bool(data.get("singleHandle", True)),
        )
