"""
Exception types raised by the relief pipeline.

All of them derive from ValueError so callers that already guard raster and
parameter handling with ``except ValueError`` keep working.
"""


class ReliefError(ValueError):
    """Base class for map relief errors."""


class InvalidInputError(ReliefError):
    """Raised when a raster is not a decoded, non-empty N x N RGBA grid."""


class DegenerateMeshError(InvalidInputError):
    """Raised when the grid has a single sample and therefore no triangles."""
