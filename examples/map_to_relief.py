#!/usr/bin/env python3
"""
Map to Relief - turn street or topographic map images into 3D terrain meshes.

Loads one or more map images, samples them at the chosen resolution, classifies
every pixel as terrain, road or building, and builds the relief mesh. Prints a
summary for each image and can write a diagnostic figure showing the
classification and height field.

Usage:
    python examples/map_to_relief.py MAP.png [MAP2.png ...] [OPTIONS]

Options:
    --segments, -n INT          Sampling resolution N (default: 400)
    --height-scale, -s FLOAT    Height multiplier (default: 50)
    --invert                    Dark pixels become high
    --keep-text                 Disable text/marker filtering and classification
    --vertex-smoothing FLOAT    Height smoothing strength in [0, 1] (default: 0)
    --brightness FLOAT          Texture brightness (default: 1)
    --contrast FLOAT            Texture contrast (default: 1)
    --diagnostics [DIR]         Write <image>_diagnostics.png files to DIR
                                (default: diagnostics/ in the project root)
    --cache                     Reuse results for unchanged image/parameters

Examples:
    python examples/map_to_relief.py city.png --segments 300 --height-scale 30
    python examples/map_to_relief.py city.png --invert --vertex-smoothing 0.4
    python examples/map_to_relief.py maps/*.png --diagnostics diagnostics/
"""

import sys
import argparse
import logging
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tqdm import tqdm

from src import config
from src.relief.data_loading import load_raster
from src.relief.diagnostics import plot_relief_diagnostics
from src.relief.errors import ReliefError
from src.relief.parameters import ReliefParameters
from src.relief.pipeline import ReliefPipeline

logging.basicConfig(
    level=getattr(logging, config.DEFAULT_LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Convert map images into 3D relief meshes")
    parser.add_argument("images", nargs="+", type=Path, help="Map image files")
    parser.add_argument("--segments", "-n", type=int, default=config.DEFAULT_SEGMENTS)
    parser.add_argument("--height-scale", "-s", type=float, default=config.DEFAULT_HEIGHT_SCALE)
    parser.add_argument("--invert", action="store_true", help="Dark pixels become high")
    parser.add_argument(
        "--keep-text", action="store_true", help="Disable text/marker filtering"
    )
    parser.add_argument(
        "--vertex-smoothing", type=float, default=config.DEFAULT_VERTEX_SMOOTHING
    )
    parser.add_argument("--brightness", type=float, default=config.DEFAULT_BRIGHTNESS)
    parser.add_argument("--contrast", type=float, default=config.DEFAULT_CONTRAST)
    parser.add_argument(
        "--diagnostics",
        type=Path,
        nargs="?",
        const=config.DIAGNOSTICS_DIR,
        default=None,
        help=f"Write diagnostic plots (default directory: {config.DIAGNOSTICS_DIR})",
    )
    parser.add_argument("--cache", action="store_true", help="Enable the geometry cache")
    parser.add_argument("--gpu", action="store_true", help="Use PyTorch for neighborhood ops")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    params = ReliefParameters(
        segments=args.segments,
        height_scale=args.height_scale,
        invert_height=args.invert,
        remove_text=not args.keep_text,
        vertex_smoothing=args.vertex_smoothing,
        brightness=args.brightness,
        contrast=args.contrast,
    )
    try:
        params.validate()
    except ValueError as e:
        logger.error(f"Invalid parameters: {e}")
        return 2

    pipeline = ReliefPipeline(cache_enabled=args.cache, use_gpu=args.gpu, verbose=args.verbose)

    failures = 0
    for image_path in tqdm(args.images, desc="Building reliefs"):
        try:
            raster = load_raster(image_path, params.segments)
            result = pipeline.run(raster, params)
        except ReliefError as e:
            logger.error(f"{image_path}: {e}")
            failures += 1
            continue

        counts = result.feature_counts
        logger.info(
            f"{image_path.name}: {result.geometry.vertex_count} vertices, "
            f"{result.geometry.triangle_count} triangles, "
            f"terrain={counts['terrain']} road={counts['road']} building={counts['building']}, "
            f"height {result.height_field.min():.3f}-{result.height_field.max():.3f}"
        )

        if args.diagnostics:
            plot_relief_diagnostics(
                raster,
                result.feature_map,
                result.raw_heights,
                result.height_field,
                args.diagnostics / f"{image_path.stem}_diagnostics.png",
                title_prefix=image_path.stem,
            )

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
