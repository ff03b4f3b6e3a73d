"""
Test suite for the map relief pipeline.

Tests recompute() end to end, the stage ordering, the task graph and the
geometry cache integration of ReliefPipeline.
"""

import io
import unittest
import tempfile
import shutil
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest

from src.relief.errors import DegenerateMeshError, InvalidInputError
from src.relief.features import FeatureType
from src.relief.parameters import ParameterLimits, ReliefParameters
from src.relief.pipeline import (
    PipelineContext,
    STAGES,
    ReliefPipeline,
    execution_order,
    recompute,
    run_stage,
)


def _uniform(rgba, size):
    return np.full((size, size, 4), rgba, dtype=np.uint8)


class TestRecompute(unittest.TestCase):
    """End-to-end runs of recompute()."""

    def test_all_white_map_is_flat_road(self):
        """A white map is one big road at roadbed height."""
        params = ReliefParameters(segments=4, height_scale=50.0)
        result = recompute(_uniform((255, 255, 255, 255), 4), params)

        self.assertTrue(np.all(result.height_field == 0.05))
        self.assertEqual(result.feature_counts, {"terrain": 0, "road": 16, "building": 0})
        np.testing.assert_allclose(result.geometry.positions[:, 2], 2.5, rtol=1e-6)

    def test_transparent_map_is_suppressed_terrain(self):
        """Transparent pixels are overlay: 0.05 raw, compressed to 0.01."""
        result = recompute(_uniform((0, 0, 0, 0), 4), ReliefParameters(segments=4))

        self.assertEqual(result.feature_counts["terrain"], 16)
        np.testing.assert_allclose(result.height_field, 0.01)

    def test_gray_block_core_height(self):
        """The center of a 5x5 gray block is a core building."""
        result = recompute(_uniform((150, 150, 150, 255), 5), ReliefParameters(segments=5))

        self.assertAlmostEqual(result.height_field[2, 2], 0.8)
        self.assertAlmostEqual(result.height_field[0, 0], 0.6)
        self.assertEqual(result.feature_counts["building"], 25)

    def test_default_parameters_follow_raster_size(self):
        result = recompute(_uniform((255, 255, 255, 255), 6))

        self.assertEqual(result.parameters.segments, 6)
        self.assertEqual(result.geometry.vertex_count, 36)
        self.assertEqual(result.geometry.triangle_count, 50)

    def test_texture_and_filter(self):
        raster = _uniform((200, 100, 50, 180), 4)
        params = ReliefParameters(segments=4, brightness=0.0, texture_smoothing=False)

        result = recompute(raster, params)

        self.assertTrue(np.all(result.texture[..., :3] == 128))
        self.assertTrue(np.all(result.texture[..., 3] == 180))
        self.assertEqual(result.texture_filter, "nearest")
        # The height passes read the unadjusted raster
        self.assertTrue(np.all(raster[..., 0] == 200))

    def test_smoothing_applied_before_mesh(self):
        raster = _uniform((170, 200, 140, 255), 9)
        raster[4, 4] = (150, 150, 150, 255)
        params = ReliefParameters(segments=9, height_scale=1.0, vertex_smoothing=0.2)

        result = recompute(raster, params)
        unsmoothed = recompute(raster, params.with_changes(vertex_smoothing=0.0))

        self.assertLess(result.height_field[4, 4], unsmoothed.height_field[4, 4])
        np.testing.assert_allclose(
            result.geometry.positions[:, 2], result.height_field.ravel(), rtol=1e-6
        )

    def test_placement_uses_y_position(self):
        params = ReliefParameters(segments=3, height_scale=10.0, y_position=-7.0)
        result = recompute(_uniform((255, 255, 255, 255), 3), params)

        np.testing.assert_allclose(result.placement.positions[:, 1], 0.5 - 7.0, atol=1e-5)
        np.testing.assert_allclose(result.placement.normals[:, 1], 1.0, atol=1e-6)

    def test_runs_are_independent(self):
        """A second call with other parameters does not see the first."""
        raster = _uniform((150, 150, 150, 255), 5)

        first = recompute(raster, ReliefParameters(segments=5))
        inverted = recompute(raster, ReliefParameters(segments=5, invert_height=True))
        again = recompute(raster, ReliefParameters(segments=5))

        self.assertAlmostEqual(inverted.height_field[2, 2], 0.2)
        np.testing.assert_array_equal(first.height_field, again.height_field)

    def test_size_mismatch_raises(self):
        with self.assertRaises(InvalidInputError):
            recompute(_uniform((255, 255, 255, 255), 4), ReliefParameters(segments=8))

    def test_one_pixel_raster_raises(self):
        with self.assertRaises(DegenerateMeshError):
            recompute(_uniform((255, 255, 255, 255), 1))

    def test_invalid_parameters_raise(self):
        raster = _uniform((255, 255, 255, 255), 4)

        with self.assertRaises(ValueError):
            recompute(raster, ReliefParameters(segments=4, vertex_smoothing=2.0))
        with self.assertRaises(ValueError):
            recompute(raster, ReliefParameters(segments=4), limits=ParameterLimits(segments=(8, 16)))

    def test_nan_brightness_rejected_before_texture(self):
        """A NaN brightness never reaches the uint8 texture cast."""
        raster = _uniform((150, 150, 150, 255), 4)

        with self.assertRaises(ValueError):
            recompute(raster, ReliefParameters(segments=4, brightness=float("nan")))

    def test_result_carries_pass_one_buffers(self):
        raster = _uniform((170, 200, 140, 255), 5)
        raster[2, 2] = (150, 150, 150, 255)

        result = recompute(raster, ReliefParameters(segments=5, invert_height=True))

        self.assertEqual(result.feature_map[2, 2], FeatureType.BUILDING)
        self.assertEqual(result.feature_map[0, 0], FeatureType.TERRAIN)
        self.assertAlmostEqual(result.raw_heights[0, 0], 1 - (170 + 200 + 140) / 3 / 255)

    def test_stage_requires_prerequisite(self):
        ctx = PipelineContext(raster=_uniform((255, 255, 255, 255), 3),
                              parameters=ReliefParameters(segments=3))

        with self.assertRaises(RuntimeError):
            run_stage(ctx, "build_mesh")

    def test_run_stage_records_completion(self):
        ctx = PipelineContext(raster=_uniform((255, 255, 255, 255), 3),
                              parameters=ReliefParameters(segments=3))

        run_stage(ctx, "classify")

        self.assertEqual(ctx.completed, ["classify"])
        self.assertEqual(ctx.feature_map.shape, (3, 3))


class TestReliefPipelineGraph(unittest.TestCase):
    """Tests for the stage registry and execution plan."""

    def setUp(self):
        self.pipeline = ReliefPipeline(verbose=False)

    def test_execution_order_for_place(self):
        order = execution_order("place")

        self.assertEqual(order, ["classify", "resolve_heights", "smooth", "build_mesh", "place"])

    def test_texture_is_independent(self):
        self.assertEqual(execution_order("adjust_texture"), ["adjust_texture"])

    def test_explain_prints_plan(self):
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            order = self.pipeline.explain("build_mesh")

        output = buffer.getvalue()
        self.assertIn("Execution plan for: build_mesh", output)
        self.assertIn("1. classify", output)
        self.assertIn("4. build_mesh", output)
        self.assertEqual(order, ["classify", "resolve_heights", "smooth", "build_mesh"])

    def test_explain_unknown_task(self):
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            order = self.pipeline.explain("render")

        self.assertIn("Unknown task: render", buffer.getvalue())
        self.assertEqual(order, [])

    def test_explained_plan_is_what_runs(self):
        """The printed plan matches the stages recompute actually ran, in order."""
        with redirect_stdout(io.StringIO()):
            plan = self.pipeline.explain()

        result = recompute(_uniform((150, 150, 150, 255), 4))

        self.assertEqual(result.completed_stages, plan)
        self.assertEqual(set(plan), set(STAGES))

    def test_every_stage_follows_its_dependencies(self):
        order = execution_order()

        for name, stage in STAGES.items():
            for dep in stage.depends_on:
                self.assertLess(order.index(dep), order.index(name))


class TestReliefPipelineCache(unittest.TestCase):
    """Tests for ReliefPipeline with the geometry cache enabled."""

    def setUp(self):
        self.cache_dir = tempfile.mkdtemp()
        self.pipeline = ReliefPipeline(cache_enabled=True, cache_dir=self.cache_dir, verbose=False)
        self.raster = _uniform((150, 150, 150, 255), 5)
        self.raster[0, :] = (255, 255, 255, 255)
        self.params = ReliefParameters(segments=5, height_scale=20.0, y_position=3.0)

    def tearDown(self):
        shutil.rmtree(self.cache_dir)

    def test_cache_miss_then_hit(self):
        fresh = self.pipeline.run(self.raster, self.params)
        self.assertEqual(self.pipeline.cache_stats()["cache_files"], 2)

        with patch("src.relief.pipeline.recompute", side_effect=AssertionError("recomputed")):
            cached = self.pipeline.run(self.raster, self.params)

        np.testing.assert_array_equal(cached.height_field, fresh.height_field)
        np.testing.assert_array_equal(cached.geometry.indices, fresh.geometry.indices)
        np.testing.assert_allclose(cached.placement.positions, fresh.placement.positions)
        np.testing.assert_array_equal(cached.texture, fresh.texture)
        self.assertEqual(cached.feature_counts, fresh.feature_counts)
        np.testing.assert_array_equal(cached.feature_map, fresh.feature_map)
        np.testing.assert_array_equal(cached.raw_heights, fresh.raw_heights)
        self.assertEqual(cached.completed_stages, fresh.completed_stages)

    def test_parameter_change_misses(self):
        self.pipeline.run(self.raster, self.params)
        self.pipeline.run(self.raster, self.params.with_changes(invert_height=True))

        self.assertEqual(self.pipeline.cache_stats()["cache_files"], 4)

    def test_clear_cache(self):
        self.pipeline.run(self.raster, self.params)

        self.assertEqual(self.pipeline.clear_cache(), 2)

    def test_corrupted_entry_is_recomputed(self):
        self.pipeline.run(self.raster, self.params)
        for path in Path(self.cache_dir).glob("*.npz"):
            path.write_bytes(b"corrupt")

        result = self.pipeline.run(self.raster, self.params)

        self.assertEqual(result.geometry.vertex_count, 25)


class TestRunImage:
    """ReliefPipeline.run_image decodes the file first."""

    def test_run_image(self, sample_map_file):
        pipeline = ReliefPipeline(verbose=False)
        result = pipeline.run_image(sample_map_file, ReliefParameters(segments=20))

        assert result.geometry.vertex_count == 400
        assert result.feature_counts["building"] == 49
        assert result.height_field[10, 0] == pytest.approx(0.05)
        assert result.height_field[5, 5] == pytest.approx(0.8)

    def test_feature_type_values_are_stable(self):
        assert [int(ft) for ft in FeatureType] == [0, 1, 2]


if __name__ == "__main__":
    unittest.main()
