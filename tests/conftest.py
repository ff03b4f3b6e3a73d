"""Pytest configuration and fixtures for map-relief tests."""
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest
import numpy as np


@pytest.fixture
def make_raster():
    """Factory for uniform N x N RGBA rasters."""

    def _make(rgba, size):
        return np.full((size, size, 4), rgba, dtype=np.uint8)

    return _make


@pytest.fixture
def sample_map():
    """Small synthetic street map: gray block, white road, green park, text."""
    raster = np.zeros((20, 20, 4), dtype=np.uint8)
    raster[...] = (170, 200, 140, 255)  # parkland (terrain)
    raster[2:9, 2:9] = (150, 150, 150, 255)  # building block
    raster[10:12, :] = (255, 255, 255, 255)  # street
    raster[15, 15] = (0, 0, 0, 255)  # text stroke
    return raster


@pytest.fixture
def sample_map_file(tmp_path, sample_map):
    """Path to the synthetic map saved as PNG."""
    from PIL import Image

    path = tmp_path / "sample_map.png"
    Image.fromarray(sample_map).save(path)
    return path


@pytest.fixture
def cache_dir(tmp_path):
    """Temporary cache directory for tests."""
    cache = tmp_path / "cache"
    cache.mkdir()
    return cache


@pytest.fixture
def project_root():
    """Get the project root directory."""
    return Path(__file__).parent.parent
