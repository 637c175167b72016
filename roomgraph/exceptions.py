"""Custom exception hierarchy for roomgraph."""

from __future__ import annotations

from typing import Any


class RoomGraphError(Exception):
    """Base exception for all roomgraph-specific errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(RoomGraphError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(RoomGraphError):
    """Base class for validation errors."""
    pass


class SchemaError(ValidationError):
    """Raised when an oracle payload does not fit the room schema."""
    pass


class GeometryError(RoomGraphError):
    """Raised when geometry operations fail."""
    pass


class ImageDecodeError(GeometryError):
    """Raised when a floorplan raster cannot be decoded."""
    pass


class OracleError(RoomGraphError):
    """Raised when a call to the reasoning oracle fails."""
    pass


class OracleTimeoutError(OracleError):
    """Raised when the oracle interaction times out."""
    pass


class OracleMalformedOutputError(OracleError):
    """Raised when the oracle answers with something that cannot be parsed."""
    pass


class OracleRateLimitError(OracleError):
    """Raised when the oracle keeps rate limiting after all retries."""
    pass


class LayoutError(RoomGraphError):
    """Base class for layout errors."""
    pass


class EmptyFloorplanError(LayoutError):
    """Raised when there are no rooms to lay out."""
    pass
