"""
Final height resolution from a complete feature map (pass 2).

Roads are flattened to a fixed roadbed, buildings are tiered by how many of
their eight neighbors are also buildings, and terrain is compressed so that
structures read as taller than the ground around them.
"""

import logging

import numpy as np
from scipy import ndimage

from .features import FeatureType

logger = logging.getLogger(__name__)

ROAD_HEIGHT = 0.05
TERRAIN_COMPRESSION = 0.2

# Building tiers by number of building neighbors
CORE_MIN_NEIGHBORS = 5
EDGE_MIN_NEIGHBORS = 3
CORE_HEIGHT = 0.8
CORE_HEIGHT_INVERTED = 0.2
EDGE_HEIGHT = 0.6
EDGE_HEIGHT_INVERTED = 0.4
ISOLATED_FLOOR = 0.2
ISOLATED_GAIN = 0.8

# 8-connected neighborhood, excluding the cell itself
_NEIGHBOR_KERNEL = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=np.int32)


def count_building_neighbors(feature_map, use_gpu=False):
    """
    Count building cells among the 8 neighbors of every cell.

    Cells outside the grid are treated as terrain, so border cells only count
    their in-bounds neighbors.

    Args:
        feature_map (np.ndarray): (N, N) array of FeatureType values
        use_gpu (bool): Compute the count with PyTorch (default: False)

    Returns:
        np.ndarray: (N, N) int32 array of counts in [0, 8]
    """
    building = feature_map == FeatureType.BUILDING

    if use_gpu:
        from .gpu_ops import gpu_building_neighbors  # pylint: disable=import-outside-toplevel

        return gpu_building_neighbors(building)

    return ndimage.convolve(
        building.astype(np.int32), _NEIGHBOR_KERNEL, mode="constant", cval=0
    )


def resolve_heights(feature_map, raw_heights, invert_height=False, use_gpu=False):
    """
    Derive the final height of every cell from its feature and neighborhood.

    Rules:
        - ROAD: 0.05
        - BUILDING with >= 5 building neighbors: 0.8 (0.2 inverted)
        - BUILDING with 3-4 building neighbors: 0.6 (0.4 inverted)
        - BUILDING with < 3 building neighbors: 0.2 + raw * 0.8
        - TERRAIN: raw * 0.2

    The feature map must be fully classified before this runs, since every
    building cell reads its neighbors' classes.

    Args:
        feature_map (np.ndarray): (N, N) array of FeatureType values
        raw_heights (np.ndarray): (N, N) raw heights in [0, 1]
        invert_height (bool): Swap the building tier heights
        use_gpu (bool): Count neighbors with PyTorch (default: False)

    Returns:
        np.ndarray: (N, N) float64 final heights in [0, 1]
    """
    if feature_map.shape != raw_heights.shape:
        raise ValueError(
            f"Feature map shape {feature_map.shape} does not match "
            f"raw height shape {raw_heights.shape}"
        )

    logger.info(f"Resolving final heights for {feature_map.shape[0]}x{feature_map.shape[1]} grid")

    raw = np.asarray(raw_heights, dtype=np.float64)
    road = feature_map == FeatureType.ROAD
    building = feature_map == FeatureType.BUILDING

    neighbors = count_building_neighbors(feature_map, use_gpu=use_gpu)
    core = building & (neighbors >= CORE_MIN_NEIGHBORS)
    edge = building & (neighbors >= EDGE_MIN_NEIGHBORS) & (neighbors < CORE_MIN_NEIGHBORS)
    isolated = building & (neighbors < EDGE_MIN_NEIGHBORS)

    final = raw * TERRAIN_COMPRESSION
    final[road] = ROAD_HEIGHT
    final[core] = CORE_HEIGHT_INVERTED if invert_height else CORE_HEIGHT
    final[edge] = EDGE_HEIGHT_INVERTED if invert_height else EDGE_HEIGHT
    final[isolated] = ISOLATED_FLOOR + raw[isolated] * ISOLATED_GAIN

    logger.debug(
        f"Building tiers: core={int(core.sum())}, edge={int(edge.sum())}, "
        f"isolated={int(isolated.sum())}"
    )
    logger.info(f"Final height range: {final.min():.3f} to {final.max():.3f}")

    return np.clip(final, 0.0, 1.0)
