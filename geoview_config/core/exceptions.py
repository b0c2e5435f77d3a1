"""Errors raised and recorded while resolving layer configurations.

Errors carry a localization key and positional parameters instead of a
formatted message so they can be rendered by the caller's i18n layer.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Broad category of a resolution failure."""

    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    CONTENT = "content"
    STRUCTURAL = "structural"
    CANCELLED = "cancelled"
    PROGRAMMING = "programming"


class GeoviewConfigError(Exception):
    """Base class for configuration and resolution errors."""

    kind = ErrorKind.STRUCTURAL
    message_key = "validation.layer.loadfailed"

    def __init__(self, message: str, params: list | None = None, message_key: str | None = None):
        super().__init__(message)
        self.params = list(params or [])
        if message_key is not None:
            self.message_key = message_key

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "messageKey": self.message_key,
            "params": [str(p) for p in self.params],
            "message": str(self),
        }


class FetchError(GeoviewConfigError):
    """Network failure, non-2xx response or timeout."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, params: list | None = None, kind: ErrorKind = ErrorKind.TRANSPORT):
        super().__init__(message, params)
        self.kind = kind


class ServiceMetadataError(GeoviewConfigError):
    """Empty or malformed response, or a service level error object."""

    kind = ErrorKind.CONTENT
    message_key = "validation.layer.metadata"


class ConfigIntegrityError(GeoviewConfigError):
    """The configuration tree is inconsistent (missing id, detached node, ...)."""

    message_key = "validation.config.integrity"


class UnsupportedGeometryTypeError(GeoviewConfigError):
    message_key = "validation.layer.geometryType.unsupported"


class LayerIdNotFoundError(GeoviewConfigError):
    message_key = "validation.layer.notfound"


class EmptyLayerGroupError(GeoviewConfigError):
    message_key = "validation.layer.emptygroup"


class ProjectionMismatchError(GeoviewConfigError):
    message_key = "validation.layer.projection.mismatch"


class LayerStatusError(GeoviewConfigError):
    """Illegal status transition (leaving the error state)."""

    message_key = "validation.layer.status"


class ResolutionCancelledError(GeoviewConfigError):
    kind = ErrorKind.CANCELLED
    message_key = "validation.layer.cancelled"


class UnsupportedLayerTypeError(GeoviewConfigError, ValueError):
    """Requested layer type has no registered resolver."""

    kind = ErrorKind.PROGRAMMING
    message_key = "validation.layer.type.unsupported"
