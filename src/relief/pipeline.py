"""
Map relief pipeline: raster + parameters -> height field, mesh and texture.

`recompute` is the pure entry point. It builds a fresh PipelineContext for
every call, runs the registered stages in dependency order and returns a
ReliefResult; nothing is kept between calls. Callers re-invoke it whenever
any parameter changes and drop any result from an older parameter set.

STAGES is the single registry of stages and their dependencies. Both
execution and ReliefPipeline.explain() read their order from
execution_order(), so the printed plan is the plan that runs.

Example:
    from src.relief.pipeline import ReliefPipeline
    from src.relief.parameters import ReliefParameters

    pipeline = ReliefPipeline(cache_enabled=False)
    result = pipeline.run_image("map.png", ReliefParameters(segments=200))

    # Show execution plan
    pipeline.explain("place")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from src.relief.cache import GeometryCache
from src.relief.data_loading import load_raster, validate_raster
from src.relief.diagnostics import summarize_features
from src.relief.errors import InvalidInputError
from src.relief.features import build_feature_map
from src.relief.heights import resolve_heights
from src.relief.mesh_operations import MeshGeometry, Placement, build_mesh, place_mesh
from src.relief.parameters import ParameterLimits, ReliefParameters
from src.relief.transforms import adjust_texture, smooth_height_field, texture_filter_mode

logger = logging.getLogger(__name__)


@dataclass
class PipelineContext:
    """Buffers owned by one pipeline run, filled stage by stage."""

    raster: np.ndarray
    parameters: ReliefParameters
    use_gpu: bool = False
    feature_map: Optional[np.ndarray] = None
    raw_heights: Optional[np.ndarray] = None
    final_heights: Optional[np.ndarray] = None
    height_field: Optional[np.ndarray] = None
    geometry: Optional[MeshGeometry] = None
    placement: Optional[Placement] = None
    texture: Optional[np.ndarray] = None
    completed: List[str] = field(default_factory=list)

    def require(self, stage: str) -> None:
        """Fail if a prerequisite stage has not run in this context."""
        if stage not in self.completed:
            raise RuntimeError(f"Stage '{stage}' must complete first")


@dataclass
class ReliefResult:
    """Everything a renderer or exporter needs from one run."""

    height_field: np.ndarray
    """(N, N) final heights in [0, 1], after smoothing."""

    geometry: MeshGeometry
    placement: Placement
    texture: np.ndarray
    """(N, N, 4) uint8 RGBA texture (adjusted when brightness/contrast != 1)."""

    texture_filter: str
    """'linear' or 'nearest' sampling for the texture."""

    feature_counts: Dict[str, int]
    parameters: ReliefParameters

    feature_map: np.ndarray
    """(N, N) FeatureType values from pass 1."""

    raw_heights: np.ndarray
    """(N, N) brightness-derived heights from pass 1."""

    completed_stages: List[str] = field(default_factory=list)
    """Stage names in the order they ran."""


# ===== Stages =====


def classify(ctx: PipelineContext) -> None:
    """Pass 1, per-pixel classification."""
    params = ctx.parameters
    ctx.feature_map, ctx.raw_heights = build_feature_map(
        ctx.raster, invert_height=params.invert_height, remove_text=params.remove_text
    )


def resolve(ctx: PipelineContext) -> None:
    """Pass 2, feature rules and building density. Needs the full feature map."""
    ctx.final_heights = resolve_heights(
        ctx.feature_map,
        ctx.raw_heights,
        invert_height=ctx.parameters.invert_height,
        use_gpu=ctx.use_gpu,
    )


def smooth(ctx: PipelineContext) -> None:
    ctx.height_field = smooth_height_field(
        ctx.final_heights, ctx.parameters.vertex_smoothing, use_gpu=ctx.use_gpu
    )


def mesh(ctx: PipelineContext) -> None:
    ctx.geometry = build_mesh(ctx.height_field, height_scale=ctx.parameters.height_scale)


def place(ctx: PipelineContext) -> None:
    """Rigid-body placement of the finished mesh."""
    params = ctx.parameters
    ctx.placement = place_mesh(
        ctx.geometry, y_position=params.y_position, tilt_x=params.tilt_x, tilt_z=params.tilt_z
    )


def texture(ctx: PipelineContext) -> None:
    """Brightness/contrast, independent of the height stages."""
    ctx.texture = adjust_texture(
        ctx.raster, brightness=ctx.parameters.brightness, contrast=ctx.parameters.contrast
    )


@dataclass(frozen=True)
class Stage:
    """One registered pipeline stage."""

    name: str
    func: Callable[[PipelineContext], None]
    depends_on: Tuple[str, ...]
    description: str


STAGES: Dict[str, Stage] = {
    stage.name: stage
    for stage in (
        Stage("classify", classify, (), "Classify pixels as terrain, road or building"),
        Stage("resolve_heights", resolve, ("classify",),
              "Apply feature height rules and building density"),
        Stage("smooth", smooth, ("resolve_heights",), "Box-blur the height field"),
        Stage("build_mesh", mesh, ("smooth",), "Build grid mesh with normals"),
        Stage("place", place, ("build_mesh",), "Lay flat, tilt and offset the mesh"),
        Stage("adjust_texture", texture, (), "Apply brightness and contrast to the texture"),
    )
}


def execution_order(target: Optional[str] = None) -> List[str]:
    """
    Dependency-first order of the stages needed for a target.

    Args:
        target: Stage name, or None for every registered stage

    Returns:
        list: Stage names, each after all of its dependencies

    Raises:
        KeyError: If target is not a registered stage
    """
    order: List[str] = []

    def visit(name: str) -> None:
        if name in order:
            return
        for dep in STAGES[name].depends_on:
            visit(dep)
        order.append(name)

    for name in ([target] if target is not None else STAGES):
        visit(name)
    return order


def run_stage(ctx: PipelineContext, name: str) -> None:
    """Run one stage after checking its dependencies ran in this context."""
    stage = STAGES[name]
    for dep in stage.depends_on:
        ctx.require(dep)
    stage.func(ctx)
    ctx.completed.append(name)


def _prepare(raster, parameters, limits) -> tuple:
    """Validate inputs shared by recompute and ReliefPipeline.run."""
    raster = validate_raster(raster)
    if parameters is None:
        parameters = ReliefParameters(segments=raster.shape[0])
    parameters.validate(limits)

    if raster.shape[0] != parameters.segments:
        raise InvalidInputError(
            f"Raster is {raster.shape[0]}x{raster.shape[1]} but segments is "
            f"{parameters.segments}; sample the image at the configured resolution"
        )
    return raster, parameters


def recompute(
    raster,
    parameters: Optional[ReliefParameters] = None,
    *,
    limits: Optional[ParameterLimits] = None,
    use_gpu: bool = False,
) -> ReliefResult:
    """
    Run the full pipeline on a raster.

    Args:
        raster: (N, N, 4) uint8 RGBA raster
        parameters: Parameter set (default: ReliefParameters with segments=N)
        limits: Parameter ranges to enforce (default: ParameterLimits())
        use_gpu: Use PyTorch for neighbor counting and smoothing

    Returns:
        ReliefResult for this raster and parameter set

    Raises:
        InvalidInputError: If the raster is malformed or doesn't match segments
        DegenerateMeshError: If the raster is 1x1
        ValueError: If a parameter is out of range
    """
    raster, parameters = _prepare(raster, parameters, limits)

    ctx = PipelineContext(raster=raster, parameters=parameters, use_gpu=use_gpu)
    for name in execution_order():
        run_stage(ctx, name)

    return ReliefResult(
        height_field=ctx.height_field,
        geometry=ctx.geometry,
        placement=ctx.placement,
        texture=ctx.texture,
        texture_filter=texture_filter_mode(parameters.texture_smoothing),
        feature_counts=summarize_features(ctx.feature_map),
        parameters=parameters,
        feature_map=ctx.feature_map,
        raw_heights=ctx.raw_heights,
        completed_stages=list(ctx.completed),
    )


class ReliefPipeline:
    """
    Cached runner for the map relief pipeline.

    Runs the stages registered in STAGES (classify -> resolve_heights ->
    smooth -> build_mesh -> place, with adjust_texture independent) and
    reuses finished results from the geometry cache when enabled.
    """

    def __init__(
        self,
        *,
        cache_enabled: bool = False,
        cache_dir: Path | str = None,
        limits: Optional[ParameterLimits] = None,
        use_gpu: bool = False,
        verbose: bool = True,
    ):
        """
        Initialize relief pipeline.

        Args:
            cache_enabled: Cache results on disk keyed by raster and parameters
            cache_dir: Custom geometry cache directory
            limits: Parameter ranges to enforce
            use_gpu: Use PyTorch for neighbor counting and smoothing
            verbose: Log stage details
        """
        self.cache_enabled = cache_enabled
        self.limits = limits
        self.use_gpu = use_gpu
        self.verbose = verbose

        self.geometry_cache = GeometryCache(
            cache_dir=Path(cache_dir) if cache_dir else None, enabled=cache_enabled
        )

    def _log(self, msg: str, *args, level: str = "info"):
        """Log message if verbose with lazy formatting."""
        if self.verbose:
            if level == "info":
                logger.info(msg, *args)
            elif level == "debug":
                logger.debug(msg, *args)
            elif level == "warn":
                logger.warning(msg, *args)
            elif level == "error":
                logger.error(msg, *args)

    # ===== Public API =====

    def run(self, raster, parameters: Optional[ReliefParameters] = None) -> ReliefResult:
        """
        Run the pipeline, using the geometry cache when enabled.

        Args:
            raster: (N, N, 4) uint8 RGBA raster
            parameters: Parameter set (default: ReliefParameters with segments=N)

        Returns:
            ReliefResult
        """
        raster, parameters = _prepare(raster, parameters, self.limits)
        self._log("Running relief pipeline on %dx%d raster", raster.shape[0], raster.shape[1])

        source_hash = None
        if self.cache_enabled:
            source_hash = self.geometry_cache.compute_source_hash(raster, parameters.to_dict())
            cached = self.geometry_cache.load_cache(source_hash)
            if cached is not None:
                try:
                    result = self._result_from_arrays(cached, parameters)
                    self._log("      [Cache HIT] %s", source_hash[:12])
                    return result
                except (KeyError, ValueError) as e:
                    self._log("      [Cache] Entry unusable: %s", e, level="warn")

        try:
            result = recompute(raster, parameters, limits=self.limits, use_gpu=self.use_gpu)
        except Exception as e:
            self._log("Relief pipeline failed: %s", e, level="error")
            raise

        self._log(
            "      [Fresh] %d vertices, %d triangles",
            result.geometry.vertex_count,
            result.geometry.triangle_count,
        )

        if self.cache_enabled:
            try:
                self.geometry_cache.save_cache(
                    self._result_to_arrays(result), source_hash, params=parameters.to_dict()
                )
                self._log("      [Cached] %s", source_hash[:12], level="debug")
            except OSError as e:
                self._log("      [Cache] Failed to save: %s", e, level="warn")

        return result

    def run_image(self, image_path, parameters: Optional[ReliefParameters] = None) -> ReliefResult:
        """
        Decode an image at the configured resolution and run the pipeline.

        Args:
            image_path: Path to a map image
            parameters: Parameter set (default: ReliefParameters())

        Returns:
            ReliefResult
        """
        if parameters is None:
            parameters = ReliefParameters()
        raster = load_raster(image_path, parameters.segments)
        return self.run(raster, parameters)

    def explain(self, task_name: Optional[str] = None) -> List[str]:
        """
        Print the stages that run to produce a task, in execution order.

        Args:
            task_name: Stage name, or None for the full pipeline

        Returns:
            list: Stage names in the order recompute() runs them
        """
        if task_name is not None and task_name not in STAGES:
            print(f"\nUnknown task: {task_name}")
            print(f"Available tasks: {', '.join(STAGES)}")
            return []

        order = execution_order(task_name)
        print(f"\nExecution plan for: {task_name or 'full pipeline'}")
        print("-" * 60)
        for i, name in enumerate(order, 1):
            stage = STAGES[name]
            needs = f" (after {', '.join(stage.depends_on)})" if stage.depends_on else ""
            print(f"  {i}. {name}: {stage.description}{needs}")
        return order

    def cache_stats(self) -> Dict:
        """Get cache statistics."""
        return self.geometry_cache.get_cache_stats()

    def clear_cache(self) -> int:
        """Clear the geometry cache."""
        deleted = self.geometry_cache.clear_cache()
        self._log("Cleared %d cache files", deleted)
        return deleted

    # ===== Cache (de)serialization =====

    @staticmethod
    def _result_to_arrays(result: ReliefResult) -> Dict[str, np.ndarray]:
        geometry = result.geometry
        return {
            "height_field": result.height_field,
            "positions": geometry.positions,
            "normals": geometry.normals,
            "uvs": geometry.uvs,
            "indices": geometry.indices,
            "texture": result.texture,
            "feature_map": result.feature_map,
            "raw_heights": result.raw_heights,
            "completed_stages": np.array(result.completed_stages),
            "feature_names": np.array(list(result.feature_counts.keys())),
            "feature_counts": np.array(list(result.feature_counts.values()), dtype=np.int64),
        }

    @staticmethod
    def _result_from_arrays(arrays: Dict[str, np.ndarray], parameters: ReliefParameters) -> ReliefResult:
        geometry = MeshGeometry(
            positions=arrays["positions"],
            normals=arrays["normals"],
            uvs=arrays["uvs"],
            indices=arrays["indices"],
            segments=arrays["height_field"].shape[0],
            height_scale=parameters.height_scale,
        )
        if geometry.vertex_count != geometry.segments ** 2:
            raise ValueError("Cached geometry does not match its height field")

        placement = place_mesh(
            geometry,
            y_position=parameters.y_position,
            tilt_x=parameters.tilt_x,
            tilt_z=parameters.tilt_z,
        )
        feature_counts = {
            str(name): int(count)
            for name, count in zip(arrays["feature_names"], arrays["feature_counts"])
        }
        return ReliefResult(
            height_field=arrays["height_field"],
            geometry=geometry,
            placement=placement,
            texture=arrays["texture"],
            texture_filter=texture_filter_mode(parameters.texture_smoothing),
            feature_counts=feature_counts,
            parameters=parameters,
            feature_map=arrays["feature_map"],
            raw_heights=arrays["raw_heights"],
            completed_stages=[str(name) for name in arrays["completed_stages"]],
        )
