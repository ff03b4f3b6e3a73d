"""
Height field and texture transformation operations.

This module contains the optional post-passes of the relief pipeline:
box-blur smoothing of the final height field and brightness/contrast
adjustment of the source texture. Both read their whole input and write a
new array; nothing is modified in place.
"""

import logging
import math

import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)

# Kernel radius at full smoothing strength
MAX_SMOOTHING_RADIUS = 5


def smoothing_kernel_size(vertex_smoothing):
    """
    Side length of the box kernel for a smoothing strength.

    Args:
        vertex_smoothing (float): Smoothing strength in [0, 1]

    Returns:
        int: 2 * ceil(vertex_smoothing * 5) + 1
    """
    radius = math.ceil(vertex_smoothing * MAX_SMOOTHING_RADIUS)
    return 2 * radius + 1


def smooth_height_field(height_field, vertex_smoothing, use_gpu=False):
    """
    Box-blur a height field and blend it with the original.

    The window is clamped at the borders (edge values are replicated, not
    wrapped) and the mean is computed separably into a new buffer, so every
    output cell sees only pre-smoothed values. The result is
    smoothed * s + original * (1 - s).

    Args:
        height_field (np.ndarray): (N, N) heights in [0, 1]
        vertex_smoothing (float): Smoothing strength s in [0, 1]; 0 is a no-op
        use_gpu (bool): Compute the box mean with PyTorch (default: False)

    Returns:
        np.ndarray: New (N, N) float64 array in [0, 1]

    Raises:
        ValueError: If vertex_smoothing is outside [0, 1]
    """
    if not 0.0 <= vertex_smoothing <= 1.0:
        raise ValueError(f"vertex_smoothing must be in [0, 1], got {vertex_smoothing}")

    original = np.asarray(height_field, dtype=np.float64)
    if vertex_smoothing == 0:
        return original.copy()

    size = smoothing_kernel_size(vertex_smoothing)
    logger.info(f"Smoothing height field (strength {vertex_smoothing:.2f}, kernel {size}x{size})")

    if use_gpu:
        from .gpu_ops import gpu_box_blur  # pylint: disable=import-outside-toplevel

        smoothed = gpu_box_blur(original, size)
    else:
        smoothed = ndimage.uniform_filter(original, size=size, mode="nearest")

    blended = smoothed * vertex_smoothing + original * (1.0 - vertex_smoothing)

    logger.debug(
        f"Value range before smoothing: {original.min():.3f} to {original.max():.3f}, "
        f"after: {blended.min():.3f} to {blended.max():.3f}"
    )
    return np.clip(blended, 0.0, 1.0)


def contrast_factor(contrast):
    """
    Contrast multiplier around mid-gray.

    Args:
        contrast (float): Contrast control; 259 is a pole and is rejected

    Returns:
        float: 259 * (contrast + 255) / (255 * (259 - contrast))
    """
    if contrast == 259:
        raise ValueError("contrast of 259 makes the contrast factor infinite")
    return 259.0 * (contrast + 255.0) / (255.0 * (259.0 - contrast))


def adjust_texture(raster, brightness=1.0, contrast=1.0):
    """
    Apply brightness then contrast to the color channels of a raster.

    Both steps are centered at mid-gray 128 and clamped to [0, 255]:
        c = clamp((c - 128) * brightness + 128)
        c = clamp(factor * (c - 128) + 128)
    Alpha is left untouched. With brightness == contrast == 1 the raster is
    returned unchanged (as a copy).

    Args:
        raster (np.ndarray): (N, N, 4) uint8 RGBA raster
        brightness (float): Brightness multiplier (default: 1.0)
        contrast (float): Contrast control (default: 1.0)

    Returns:
        np.ndarray: New (N, N, 4) uint8 raster

    Raises:
        ValueError: If brightness or contrast is not finite, or contrast is 259
    """
    if brightness == 1 and contrast == 1:
        return np.array(raster, copy=True)

    if not (math.isfinite(brightness) and math.isfinite(contrast)):
        raise ValueError(f"brightness and contrast must be finite, got {brightness}, {contrast}")

    factor = contrast_factor(contrast)
    logger.info(
        f"Adjusting texture (brightness={brightness}, contrast={contrast}, factor={factor:.4f})"
    )

    rgb = np.asarray(raster[..., :3], dtype=np.float64)
    rgb = np.clip((rgb - 128.0) * brightness + 128.0, 0.0, 255.0)
    rgb = np.clip(factor * (rgb - 128.0) + 128.0, 0.0, 255.0)

    adjusted = np.array(raster, dtype=np.uint8, copy=True)
    adjusted[..., :3] = np.rint(rgb).astype(np.uint8)
    return adjusted


def texture_filter_mode(texture_smoothing):
    """
    Sampling filter the renderer should use for the texture.

    Args:
        texture_smoothing (bool | float): Smooth sampling flag

    Returns:
        str: "linear" when smoothing is on, otherwise "nearest"
    """
    return "linear" if texture_smoothing and texture_smoothing > 0 else "nearest"
