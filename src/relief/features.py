"""
Pixel classification for map relief generation (pass 1).

Each RGBA sample of a map image is classified as terrain, road or building
using color heuristics tuned for street and topographic maps. Text labels,
pins and other overlays are flattened so they do not turn into spikes.

The rule chain is evaluated vectorized over the whole raster; the scalar
helpers run the same code on a 1x1 grid so there is only one copy of the
thresholds.
"""

import logging
from enum import IntEnum
from typing import NamedTuple, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Height assigned to suppressed overlay pixels (text, markers, outlines)
SUPPRESSED_HEIGHT = 0.05


class FeatureType(IntEnum):
    """Semantic class of one grid cell."""

    TERRAIN = 0
    ROAD = 1
    BUILDING = 2


class PixelInfo(NamedTuple):
    """Channels and classification of one raster sample."""

    r: int
    g: int
    b: int
    a: int
    feature: FeatureType
    raw_height: float


# Returned for lookups outside the grid
OUT_OF_BOUNDS = PixelInfo(0, 0, 0, 0, FeatureType.TERRAIN, 0.0)


def _overlay_mask(r, g, b, a, mean, saturation):
    """Samples that look like labels, markers or outlines rather than map content."""
    return (
        (a < 200)
        | ((r > 220) & (g < 80) & (b < 80))  # red markers
        | ((g > 200) & (r < 150) & (b < 150) & ((g - r) > 50))  # green park pins
        | ((saturation > 130) & (mean > 150))  # bright saturated icons
        | ((r < 30) & (g < 30) & (b < 30))  # black text and outlines
    )


def _road_mask(r, g, b):
    """Yellow/orange highways and near-white streets."""
    yellow = (r > 200) & (g > 150) & (b < 130)
    white = (
        (r > 210)
        & (g > 210)
        & (b > 210)
        & (np.abs(r - g) < 20)
        & (np.abs(g - b) < 20)
    )
    return yellow | white


def _building_mask(mean, saturation):
    """Mid-gray, low saturation blocks."""
    return (mean > 90) & (mean < 220) & (saturation < 40)


def classify_rgba(rgba, invert_height=False, remove_text=True):
    """
    Classify RGBA samples and derive their raw heights.

    Rules are applied first-match-wins when remove_text is enabled:
    overlay suppression (flattened to 0.05), road, building, terrain.
    With remove_text disabled every sample is terrain.

    Args:
        rgba (np.ndarray): Array of shape (..., 4) with channel values 0-255
        invert_height (bool): Map dark pixels high instead of bright ones
        remove_text (bool): Enable the classification rule chain

    Returns:
        tuple: (features, raw_heights) where:
            - features: np.ndarray uint8 of FeatureType values, shape rgba.shape[:-1]
            - raw_heights: np.ndarray float64 in [0, 1], same shape
    """
    rgba = np.asarray(rgba)
    if rgba.shape[-1] != 4:
        raise ValueError(f"Expected RGBA samples in the last axis, got shape {rgba.shape}")

    # int32 so sums and differences of uint8 channels cannot wrap
    channels = rgba.astype(np.int32)
    r, g, b, a = channels[..., 0], channels[..., 1], channels[..., 2], channels[..., 3]

    mean = (r + g + b) / 3.0
    brightness = mean / 255.0
    raw = 1.0 - brightness if invert_height else brightness

    features = np.full(r.shape, FeatureType.TERRAIN, dtype=np.uint8)
    if not remove_text:
        return features, np.clip(raw, 0.0, 1.0).astype(np.float64)

    saturation = np.maximum(np.maximum(r, g), b) - np.minimum(np.minimum(r, g), b)

    overlay = _overlay_mask(r, g, b, a, mean, saturation)
    road = _road_mask(r, g, b) & ~overlay
    building = _building_mask(mean, saturation) & ~overlay & ~road

    features[road] = FeatureType.ROAD
    features[building] = FeatureType.BUILDING

    raw_heights = np.where(overlay, SUPPRESSED_HEIGHT, raw)
    return features, np.clip(raw_heights, 0.0, 1.0).astype(np.float64)


def classify_pixel(r, g, b, a, invert_height=False, remove_text=True) -> Tuple[FeatureType, float]:
    """
    Classify a single RGBA sample.

    Args:
        r, g, b, a: Channel values 0-255
        invert_height: Map dark pixels high instead of bright ones
        remove_text: Enable the classification rule chain

    Returns:
        tuple: (FeatureType, raw_height)
    """
    features, raw_heights = classify_rgba(
        np.array([[r, g, b, a]]), invert_height=invert_height, remove_text=remove_text
    )
    return FeatureType(int(features[0])), float(raw_heights[0])


def pixel_info(raster, x, y, invert_height=False, remove_text=True) -> PixelInfo:
    """
    Look up one raster sample with its classification.

    Coordinates outside the grid are not an error: they return the
    OUT_OF_BOUNDS sentinel (transparent black terrain at height 0).

    Args:
        raster (np.ndarray): RGBA raster of shape (N, N, 4)
        x (int): Column index
        y (int): Row index
        invert_height (bool): Map dark pixels high instead of bright ones
        remove_text (bool): Enable the classification rule chain

    Returns:
        PixelInfo: Channels, feature and raw height of the sample
    """
    height, width = raster.shape[:2]
    if x < 0 or x >= width or y < 0 or y >= height:
        return OUT_OF_BOUNDS

    r, g, b, a = (int(c) for c in raster[y, x])
    feature, raw_height = classify_pixel(r, g, b, a, invert_height, remove_text)
    return PixelInfo(r, g, b, a, feature, raw_height)


def build_feature_map(raster, invert_height=False, remove_text=True):
    """
    Classify every cell of a raster (pass 1).

    Cells are independent, so the whole grid is classified in one vectorized
    sweep. The result must be complete before neighbor analysis runs.

    Args:
        raster (np.ndarray): RGBA raster of shape (N, N, 4), uint8
        invert_height (bool): Map dark pixels high instead of bright ones
        remove_text (bool): Enable the classification rule chain

    Returns:
        tuple: (feature_map, raw_heights), both of shape (N, N)
    """
    logger.info(
        f"Classifying {raster.shape[0]}x{raster.shape[1]} raster "
        f"(invert_height={invert_height}, remove_text={remove_text})"
    )

    feature_map, raw_heights = classify_rgba(
        raster, invert_height=invert_height, remove_text=remove_text
    )

    counts = np.bincount(feature_map.ravel(), minlength=len(FeatureType))
    logger.debug(
        "Feature counts: "
        + ", ".join(f"{ft.name.lower()}={counts[ft]}" for ft in FeatureType)
    )
    return feature_map, raw_heights
