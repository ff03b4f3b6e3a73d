"""
Color mapping functions for relief previews.

This module maps feature classes and height fields to colors, using a fixed
palette for features and matplotlib colormaps for heights.
"""

import logging

import matplotlib
import numpy as np
from matplotlib.colors import ListedColormap

from .features import FeatureType

logger = logging.getLogger(__name__)

# Preview colors per feature class (RGB, 0-255)
FEATURE_COLORS = {
    FeatureType.TERRAIN: (118, 150, 92),  # muted green
    FeatureType.ROAD: (232, 196, 96),  # road yellow
    FeatureType.BUILDING: (150, 110, 170),  # muted purple
}

# Same palette as a matplotlib colormap, indexed by FeatureType value
feature_cmap = ListedColormap(
    [np.array(FEATURE_COLORS[ft]) / 255.0 for ft in FeatureType], name="relief_features"
)


def feature_colormap(feature_map):
    """
    Color a feature map with the fixed feature palette.

    Args:
        feature_map: 2D array of FeatureType values

    Returns:
        Array of RGB colors with shape (height, width, 3) as uint8
    """
    palette = np.array([FEATURE_COLORS[ft] for ft in FeatureType], dtype=np.uint8)

    if feature_map.size and feature_map.max() >= len(palette):
        raise ValueError(f"Unknown feature value {int(feature_map.max())} in feature map")

    return palette[feature_map.astype(np.intp)]


def height_colormap(height_field, cmap_name="terrain", min_height=0.0, max_height=1.0):
    """
    Create a colormap based on normalized height values.

    Low heights map to the start of the colormap, high heights to the end.

    Args:
        height_field: 2D numpy array of heights
        cmap_name: Matplotlib colormap name (default: 'terrain')
        min_height: Height mapped to the start of the colormap (default: 0.0)
        max_height: Height mapped to the end of the colormap (default: 1.0)

    Returns:
        Array of RGB colors with shape (height, width, 3) as uint8
    """
    logger.debug(f"Creating height colormap using {cmap_name}")

    if max_height == min_height:
        normalized = np.zeros_like(height_field, dtype=np.float32)
    else:
        normalized = np.clip(
            (height_field - min_height) / (max_height - min_height), 0.0, 1.0
        ).astype(np.float32)

    cmap = matplotlib.colormaps.get_cmap(cmap_name)

    # Apply colormap (returns RGBA with shape (H, W, 4)), keep RGB
    rgb = cmap(normalized)[:, :, :3]

    return (rgb * 255).astype(np.uint8)
