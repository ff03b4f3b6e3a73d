"""
Tests for relief diagnostic plots.
"""

import numpy as np


class TestSummarizeFeatures:
    def test_counts(self, sample_map):
        from src.relief.diagnostics import summarize_features
        from src.relief.features import build_feature_map

        feature_map, _ = build_feature_map(sample_map)
        counts = summarize_features(feature_map)

        assert counts["building"] == 49
        assert counts["road"] == 40
        assert counts["terrain"] == 400 - 49 - 40

    def test_missing_classes_are_zero(self):
        from src.relief.diagnostics import summarize_features

        counts = summarize_features(np.zeros((3, 3), dtype=np.uint8))

        assert counts == {"terrain": 9, "road": 0, "building": 0}


class TestPlotReliefDiagnostics:
    """Tests for plot_relief_diagnostics."""

    def test_writes_png(self, tmp_path, sample_map):
        from src.relief.diagnostics import plot_relief_diagnostics
        from src.relief.features import build_feature_map
        from src.relief.heights import resolve_heights

        feature_map, raw = build_feature_map(sample_map)
        final = resolve_heights(feature_map, raw)
        output = tmp_path / "nested" / "sample_diagnostics.png"

        result = plot_relief_diagnostics(sample_map, feature_map, raw, final, output)

        assert result == output
        assert output.exists()
        assert output.stat().st_size > 0

    def test_custom_profile_row(self, tmp_path, sample_map):
        from src.relief.diagnostics import plot_relief_diagnostics
        from src.relief.features import build_feature_map

        feature_map, raw = build_feature_map(sample_map)
        output = tmp_path / "row.png"

        plot_relief_diagnostics(
            sample_map, feature_map, raw, raw * 0.2, output,
            title_prefix="Row Test", profile_row=10, cmap="viridis",
        )

        assert output.exists()

    def test_height_panel_uses_height_colormap(self, tmp_path, sample_map):
        from unittest.mock import patch
        from src.relief import diagnostics
        from src.relief.color_mapping import height_colormap
        from src.relief.features import build_feature_map

        feature_map, raw = build_feature_map(sample_map)

        with patch.object(diagnostics, "height_colormap", wraps=height_colormap) as colormap:
            diagnostics.plot_relief_diagnostics(
                sample_map, feature_map, raw, raw * 0.2, tmp_path / "colors.png", cmap="viridis"
            )

        colormap.assert_called_once()
        assert colormap.call_args.kwargs["cmap_name"] == "viridis"
