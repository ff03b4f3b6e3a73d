"""
GPU-accelerated operations using PyTorch.

This module provides GPU-accelerated versions of the neighborhood operations
used by the relief pipeline. Functions automatically use CUDA when available,
falling back to CPU otherwise. All functions accept numpy arrays and return
numpy arrays.

Key functions:
- gpu_box_blur: Box mean (via separable F.conv2d with replicate padding)
- gpu_building_neighbors: 8-neighbor count (via F.conv2d with zero padding)
"""

import numpy as np
import torch
import torch.nn.functional as F


def _get_device():
    """Get the best available device (CUDA > CPU)."""
    return "cuda" if torch.cuda.is_available() else "cpu"


def gpu_box_blur(data: np.ndarray, size: int) -> np.ndarray:
    """
    Apply a box (mean) filter using GPU acceleration.

    Uses separable 1D convolutions with replicate padding. Produces results
    matching scipy.ndimage.uniform_filter with mode='nearest'.

    Args:
        data: 2D input array (H, W).
        size: Side of the square window (odd number).

    Returns:
        Blurred array (same shape and dtype as input).
    """
    if size % 2 == 0:
        size += 1  # Ensure odd

    device = _get_device()

    # float64 keeps parity with the scipy path
    tensor = torch.from_numpy(np.ascontiguousarray(data, dtype=np.float64))
    tensor = tensor.unsqueeze(0).unsqueeze(0).to(device)

    kernel_1d = torch.full((size,), 1.0 / size, dtype=torch.float64, device=device)
    kernel_h = kernel_1d.view(1, 1, -1, 1)  # (1, 1, K, 1) for vertical
    kernel_w = kernel_1d.view(1, 1, 1, -1)  # (1, 1, 1, K) for horizontal

    pad_size = size // 2

    # Vertical pass
    padded = F.pad(tensor, (0, 0, pad_size, pad_size), mode="replicate")
    result = F.conv2d(padded, kernel_h)

    # Horizontal pass
    padded = F.pad(result, (pad_size, pad_size, 0, 0), mode="replicate")
    result = F.conv2d(padded, kernel_w)

    return result.squeeze(0).squeeze(0).cpu().numpy().astype(data.dtype, copy=False)


def gpu_building_neighbors(building_mask: np.ndarray) -> np.ndarray:
    """
    Count True cells among the 8 neighbors of every cell using GPU acceleration.

    Cells outside the grid count as False (zero padding). Produces identical
    results to scipy.ndimage.convolve with a ring kernel and mode='constant'.

    Args:
        building_mask: 2D boolean array (H, W).

    Returns:
        int32 array of neighbor counts (same shape as input).
    """
    device = _get_device()

    tensor = torch.from_numpy(building_mask.astype(np.float32))
    tensor = tensor.unsqueeze(0).unsqueeze(0).to(device)

    kernel = torch.ones((1, 1, 3, 3), dtype=torch.float32, device=device)
    kernel[0, 0, 1, 1] = 0.0

    counts = F.conv2d(tensor, kernel, padding=1)

    return np.rint(counts.squeeze(0).squeeze(0).cpu().numpy()).astype(np.int32)
