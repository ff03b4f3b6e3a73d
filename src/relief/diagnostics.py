"""
Diagnostic plotting utilities for map relief generation.

Provides visualization functions to understand and debug the classification
and height passes: which pixels became roads or buildings, and how the raw
brightness heights were reshaped into the final height field.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import numpy as np

from .color_mapping import feature_cmap, height_colormap
from .features import FeatureType

logger = logging.getLogger(__name__)


def summarize_features(feature_map) -> Dict[str, int]:
    """
    Count cells per feature class.

    Args:
        feature_map: 2D array of FeatureType values

    Returns:
        dict: Lower-case feature name -> cell count
    """
    counts = np.bincount(np.asarray(feature_map).ravel(), minlength=len(FeatureType))
    return {ft.name.lower(): int(counts[ft]) for ft in FeatureType}


def plot_relief_diagnostics(
    raster: np.ndarray,
    feature_map: np.ndarray,
    raw_heights: np.ndarray,
    final_heights: np.ndarray,
    output_path: Path,
    title_prefix: str = "Map Relief",
    profile_row: Optional[int] = None,
    cmap: str = "terrain",
) -> Path:
    """
    Generate diagnostic plots for one pipeline run.

    Creates a multi-panel figure showing:
    - Source raster
    - Feature classification
    - Final height field
    - Cross-section profile of raw vs. final heights

    Args:
        raster: (N, N, 4) RGBA source raster
        feature_map: (N, N) FeatureType values
        raw_heights: (N, N) brightness-derived heights
        final_heights: (N, N) heights after feature rules (and smoothing)
        output_path: Path to save the diagnostic plot
        title_prefix: Prefix for plot titles
        profile_row: Row index for cross-section (default: middle row)
        cmap: Colormap for height visualization

    Returns:
        Path to saved diagnostic plot
    """
    import matplotlib

    matplotlib.use("Agg")  # Non-interactive backend
    import matplotlib.pyplot as plt
    from matplotlib.colors import Normalize
    from matplotlib.patches import Patch

    if profile_row is None:
        profile_row = raster.shape[0] // 2

    counts = summarize_features(feature_map)
    total = max(1, feature_map.size)

    fig, axes = plt.subplots(2, 2, figsize=(14, 12))
    fig.suptitle(f"{title_prefix} Diagnostics", fontsize=14, fontweight="bold")

    # 1. Source raster
    ax1 = axes[0, 0]
    ax1.imshow(raster)
    ax1.axhline(y=profile_row, color="red", linestyle="--", alpha=0.7, linewidth=1)
    ax1.set_title("Source Raster")
    ax1.set_xlabel("Column")
    ax1.set_ylabel("Row")

    # 2. Feature classification
    ax2 = axes[0, 1]
    ax2.imshow(feature_map, cmap=feature_cmap, vmin=0, vmax=len(FeatureType) - 1,
               interpolation="nearest")
    ax2.set_title("Feature Classification")
    ax2.set_xlabel("Column")
    ax2.set_ylabel("Row")
    ax2.legend(
        handles=[
            Patch(color=feature_cmap(int(ft)), label=f"{ft.name.title()} "
                  f"({100 * counts[ft.name.lower()] / total:.1f}%)")
            for ft in FeatureType
        ],
        loc="lower right",
        fontsize=8,
    )

    # 3. Final height field
    ax3 = axes[1, 0]
    ax3.imshow(height_colormap(final_heights, cmap_name=cmap))
    ax3.axhline(y=profile_row, color="red", linestyle="--", alpha=0.7, linewidth=1)
    ax3.set_title("Final Height Field")
    ax3.set_xlabel("Column")
    ax3.set_ylabel("Row")
    plt.colorbar(
        plt.cm.ScalarMappable(norm=Normalize(vmin=0.0, vmax=1.0), cmap=cmap),
        ax=ax3,
        label="Normalized height",
    )

    # 4. Cross-section profile comparison
    ax4 = axes[1, 1]
    x = np.arange(raster.shape[1])
    ax4.plot(x, raw_heights[profile_row, :], label="Raw (brightness)", alpha=0.7, linewidth=1)
    ax4.plot(x, final_heights[profile_row, :], label="Final", alpha=0.9, linewidth=1.5)
    ax4.set_title(f"Cross-Section Profile (Row {profile_row})")
    ax4.set_xlabel("Column")
    ax4.set_ylabel("Normalized height")
    ax4.set_ylim(-0.05, 1.05)
    ax4.legend()
    ax4.grid(True, alpha=0.3)

    stats_text = (
        f"Statistics:\n"
        f"  Terrain: {counts['terrain']}\n"
        f"  Road: {counts['road']}\n"
        f"  Building: {counts['building']}\n"
        f"  Height: {final_heights.min():.3f} to {final_heights.max():.3f}"
    )
    ax4.text(
        0.02,
        0.98,
        stats_text,
        transform=ax4.transAxes,
        fontsize=9,
        verticalalignment="top",
        fontfamily="monospace",
        bbox={"boxstyle": "round", "facecolor": "wheat", "alpha": 0.8},
    )

    plt.tight_layout()

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)

    logger.info(f"Saved relief diagnostics to {output_path}")
    return output_path
