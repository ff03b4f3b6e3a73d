"""
Raster loading operations for map relief.

This module decodes map images into the square RGBA grids the pipeline
consumes and validates rasters handed over by other decoders.
"""

import logging
from pathlib import Path
from typing import Iterable, List

import numpy as np
from PIL import Image, UnidentifiedImageError
from tqdm import tqdm

from .errors import DegenerateMeshError, InvalidInputError

logger = logging.getLogger(__name__)


def validate_raster(raster) -> np.ndarray:
    """
    Check that a raster is a decoded, non-empty N x N RGBA grid with N >= 2.

    Args:
        raster: Array-like of shape (N, N, 4) with channel values 0-255

    Returns:
        np.ndarray: The raster as a uint8 array (no copy if already uint8)

    Raises:
        InvalidInputError: If the raster is missing, malformed or non-square
        DegenerateMeshError: If N == 1
    """
    if raster is None:
        raise InvalidInputError("No raster provided")

    raster = np.asarray(raster)
    if raster.ndim != 3 or raster.shape[2] != 4:
        raise InvalidInputError(f"Raster must have shape (N, N, 4), got {raster.shape}")
    if raster.shape[0] == 0 or raster.shape[1] == 0:
        raise InvalidInputError("Raster is empty")
    if raster.shape[0] != raster.shape[1]:
        raise InvalidInputError(f"Raster must be square, got {raster.shape[0]}x{raster.shape[1]}")
    if raster.shape[0] == 1:
        raise DegenerateMeshError("A 1x1 raster has no grid topology")

    if raster.dtype != np.uint8:
        if np.issubdtype(raster.dtype, np.floating) and np.isnan(raster).any():
            raise InvalidInputError("Raster contains NaN values")
        if raster.min() < 0 or raster.max() > 255:
            raise InvalidInputError("Raster channel values must be in [0, 255]")
        raster = np.rint(raster).astype(np.uint8)

    return raster


def load_raster(image_path, segments: int) -> np.ndarray:
    """
    Decode an image file and resample it to a segments x segments RGBA grid.

    The image is stretched to the square grid regardless of its aspect ratio,
    the same way it would be drawn onto a square canvas.

    Args:
        image_path: Path to any image format Pillow can read
        segments: Side length N of the output grid (>= 2)

    Returns:
        np.ndarray: (N, N, 4) uint8 RGBA raster

    Raises:
        InvalidInputError: If the file is missing or cannot be decoded
        DegenerateMeshError: If segments < 2
    """
    if segments < 2:
        raise DegenerateMeshError(f"segments must be at least 2, got {segments}")

    path = Path(image_path)
    if not path.is_file():
        raise InvalidInputError(f"Image file does not exist: {path}")

    try:
        with Image.open(path) as img:
            logger.info(f"Loading {path.name} ({img.width}x{img.height}, {img.mode})")
            rgba = img.convert("RGBA").resize((segments, segments), Image.BILINEAR)
            raster = np.asarray(rgba, dtype=np.uint8).copy()
    except (UnidentifiedImageError, OSError) as e:
        logger.error(f"Failed to decode {path}: {e}")
        raise InvalidInputError(f"Could not decode image {path}: {e}") from e

    logger.info(f"Resampled to {segments}x{segments} raster")
    return validate_raster(raster)


def load_rasters(image_paths: Iterable, segments: int) -> List[np.ndarray]:
    """
    Load several images at the same resolution.

    Args:
        image_paths: Iterable of image paths
        segments: Side length N of each output grid

    Returns:
        list: (N, N, 4) uint8 rasters in input order
    """
    paths = list(image_paths)
    rasters = []
    with tqdm(paths, desc="Loading map images") as pbar:
        for path in pbar:
            rasters.append(load_raster(path, segments))
            pbar.set_postfix({"loaded": len(rasters)})
    return rasters
