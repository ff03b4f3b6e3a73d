"""
Parameter set for one relief pipeline run.

A ReliefParameters instance is read-only for the duration of a run. Any change
(image, resolution, height scale, flags, smoothing, tilt) means the caller
builds a new instance and recomputes from the raster.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Tuple

from src import config


@dataclass(frozen=True)
class ParameterLimits:
    """Inclusive ranges enforced by ReliefParameters.validate()."""

    segments: Tuple[int, int] = config.SEGMENTS_RANGE
    """Allowed sampling grid sizes (default: 2 to 2370)."""

    height_scale: Tuple[float, float] = config.HEIGHT_SCALE_RANGE
    """Allowed height multipliers (default: -100 to 100, negative digs valleys)."""

    y_position: Tuple[float, float] = config.Y_POSITION_RANGE
    """Allowed vertical offsets of the placed mesh (default: -50 to 50)."""


@dataclass(frozen=True)
class ReliefParameters:
    """All tunables of the map relief pipeline."""

    segments: int = config.DEFAULT_SEGMENTS
    """Side length N of the sampling grid (and of the vertex grid)."""

    height_scale: float = config.DEFAULT_HEIGHT_SCALE
    """Multiplier applied to normalized heights before mesh placement."""

    invert_height: bool = config.DEFAULT_INVERT_HEIGHT
    """Dark pixels become high; also swaps the building tier heights."""

    remove_text: bool = config.DEFAULT_REMOVE_TEXT
    """Enable the text/marker filtering and road/building classification."""

    vertex_smoothing: float = config.DEFAULT_VERTEX_SMOOTHING
    """Box blur strength in [0, 1]; 0 leaves the height field untouched."""

    texture_smoothing: bool = config.DEFAULT_TEXTURE_SMOOTHING
    """Linear (True) or nearest (False) texture sampling for the renderer."""

    brightness: float = config.DEFAULT_BRIGHTNESS
    """Texture brightness multiplier around mid-gray."""

    contrast: float = config.DEFAULT_CONTRAST
    """Texture contrast control around mid-gray."""

    y_position: float = config.DEFAULT_Y_POSITION
    """Vertical offset of the finished mesh."""

    tilt_x: float = config.DEFAULT_TILT_X
    """Rotation of the finished mesh about the X axis, in degrees."""

    tilt_z: float = config.DEFAULT_TILT_Z
    """Rotation of the finished mesh about the Z axis, in degrees."""

    def validate(self, limits: ParameterLimits = None) -> "ReliefParameters":
        """
        Check every parameter against its allowed range.

        Args:
            limits: Ranges to enforce (default: ParameterLimits())

        Returns:
            self, so calls can be chained

        Raises:
            ValueError: If a parameter is outside its range
        """
        if limits is None:
            limits = ParameterLimits()

        lo, hi = limits.segments
        if int(self.segments) != self.segments or not lo <= self.segments <= hi:
            raise ValueError(f"segments must be an integer in [{lo}, {hi}], got {self.segments}")

        lo, hi = limits.height_scale
        if not lo <= self.height_scale <= hi:
            raise ValueError(f"height_scale must be in [{lo}, {hi}], got {self.height_scale}")

        lo, hi = limits.y_position
        if not lo <= self.y_position <= hi:
            raise ValueError(f"y_position must be in [{lo}, {hi}], got {self.y_position}")

        if not 0.0 <= self.vertex_smoothing <= 1.0:
            raise ValueError(
                f"vertex_smoothing must be in [0, 1], got {self.vertex_smoothing}"
            )

        for name in ("brightness", "contrast", "tilt_x", "tilt_z"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be a finite number, got {getattr(self, name)}")

        if self.contrast == 259:
            raise ValueError("contrast of 259 makes the contrast factor infinite")

        return self

    def with_changes(self, **changes) -> "ReliefParameters":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping of all fields (stable key order)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "ReliefParameters":
        """
        Build parameters from a mapping, ignoring unknown keys.

        Args:
            values: Mapping of field names to values

        Returns:
            ReliefParameters with defaults for missing fields
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})
