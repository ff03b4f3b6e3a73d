"""Configuration module for map-relief project.

Centralizes cache paths and parameter defaults.
"""
from pathlib import Path

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Cache directories (created by the caches when enabled)
CACHE_DIR = PROJECT_ROOT / ".relief_cache"
GEOMETRY_CACHE = CACHE_DIR / "geometry"
DIAGNOSTICS_DIR = PROJECT_ROOT / "diagnostics"

# Mesh footprint (world units per side)
FOOTPRINT_SIZE = 200.0

# Parameter defaults
DEFAULT_SEGMENTS = 400
DEFAULT_HEIGHT_SCALE = 50.0
DEFAULT_INVERT_HEIGHT = False
DEFAULT_REMOVE_TEXT = True
DEFAULT_VERTEX_SMOOTHING = 0.0
DEFAULT_TEXTURE_SMOOTHING = True
DEFAULT_BRIGHTNESS = 1.0
DEFAULT_CONTRAST = 1.0
DEFAULT_Y_POSITION = 0.0
DEFAULT_TILT_X = 0.0
DEFAULT_TILT_Z = 0.0

# Parameter limits (inclusive)
SEGMENTS_RANGE = (2, 2370)
HEIGHT_SCALE_RANGE = (-100.0, 100.0)
Y_POSITION_RANGE = (-50.0, 50.0)

DEFAULT_LOG_LEVEL = "INFO"
