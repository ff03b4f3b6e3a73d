"""
Geometry caching module for the map relief pipeline.

Implements .npz-based caching keyed by a hash of the raster contents and the
parameter set, so re-running an unchanged image/parameter combination skips
classification and mesh generation. Keys are content hashes, so a cached
entry can never stand in for a different input.
"""

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np

from src import config

logger = logging.getLogger(__name__)


class GeometryCache:
    """
    Manages caching of pipeline output arrays with hash validation.

    The cache stores:
    - Output arrays (height field, mesh buffers, texture) as a .npz file
    - Metadata including the parameters, shapes and timestamp

    Attributes:
        cache_dir: Directory where cache files are stored
        enabled: Whether caching is enabled
    """

    def __init__(self, cache_dir: Optional[Path] = None, enabled: bool = True):
        """
        Initialize geometry cache.

        Args:
            cache_dir: Directory for cache files. If None, uses config.GEOMETRY_CACHE
            enabled: Whether caching is enabled (default: True)
        """
        if cache_dir is None:
            cache_dir = config.GEOMETRY_CACHE

        self.cache_dir = Path(cache_dir)
        self.enabled = enabled

        if self.enabled:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Geometry cache initialized at: {self.cache_dir}")

    def compute_source_hash(self, raster: np.ndarray, params: dict) -> str:
        """
        Compute hash of a raster and the parameters applied to it.

        The cache is invalidated if any pixel, the raster shape or any
        parameter changes.

        Args:
            raster: RGBA raster array
            params: Parameter mapping (e.g. ReliefParameters.to_dict())

        Returns:
            SHA256 hash of raster contents and parameters
        """
        hash_obj = hashlib.sha256()
        hash_obj.update(str(raster.shape).encode())
        hash_obj.update(str(raster.dtype).encode())
        hash_obj.update(np.ascontiguousarray(raster).tobytes())
        hash_obj.update(json.dumps(params, sort_keys=True, default=str).encode())
        return hash_obj.hexdigest()

    def get_cache_path(self, source_hash: str, cache_name: str = "relief") -> Path:
        """
        Get the path for a cache file.

        Args:
            source_hash: Hash of raster and parameters
            cache_name: Name of cache item (default: "relief")

        Returns:
            Path to cache file
        """
        return self.cache_dir / f"{cache_name}_{source_hash}.npz"

    def get_metadata_path(self, source_hash: str, cache_name: str = "relief") -> Path:
        """
        Get the path for cache metadata file.

        Args:
            source_hash: Hash of raster and parameters
            cache_name: Name of cache item (default: "relief")

        Returns:
            Path to metadata file
        """
        return self.cache_dir / f"{cache_name}_{source_hash}_meta.json"

    def save_cache(
        self,
        arrays: Dict[str, np.ndarray],
        source_hash: str,
        params: Optional[dict] = None,
        cache_name: str = "relief",
    ) -> Tuple[Optional[Path], Optional[Path]]:
        """
        Save output arrays to cache.

        Args:
            arrays: Mapping of array name to array
            source_hash: Hash of raster and parameters
            params: Parameter mapping recorded in the metadata
            cache_name: Name of cache item (default: "relief")

        Returns:
            Tuple of (cache_file_path, metadata_file_path)
        """
        if not self.enabled:
            return None, None

        cache_path = self.get_cache_path(source_hash, cache_name)
        metadata_path = self.get_metadata_path(source_hash, cache_name)

        start_time = time.time()

        np.savez_compressed(cache_path, **arrays)

        metadata = {
            "source_hash": source_hash,
            "params": params or {},
            "arrays": {
                name: {"shape": list(arr.shape), "dtype": str(arr.dtype)}
                for name, arr in arrays.items()
            },
            "cache_time": time.time(),
        }

        with open(metadata_path, "w") as f:
            json.dump(metadata, f, indent=2, default=str)

        elapsed = time.time() - start_time
        logger.info(f"Cached geometry to {cache_path.name} ({elapsed:.2f}s)")
        logger.debug(f"Cache size: {cache_path.stat().st_size / (1024*1024):.1f} MB")

        return cache_path, metadata_path

    def load_cache(
        self, source_hash: str, cache_name: str = "relief"
    ) -> Optional[Dict[str, np.ndarray]]:
        """
        Load cached output arrays.

        Args:
            source_hash: Hash of raster and parameters
            cache_name: Name of cache item (default: "relief")

        Returns:
            Mapping of array name to array, or None if the cache doesn't exist
            or cannot be read
        """
        if not self.enabled:
            return None

        cache_path = self.get_cache_path(source_hash, cache_name)

        if not cache_path.exists():
            logger.debug(f"Cache miss: {cache_path.name}")
            return None

        try:
            start_time = time.time()

            with np.load(cache_path, allow_pickle=False) as cache_data:
                arrays = {name: cache_data[name] for name in cache_data.files}

            elapsed = time.time() - start_time
            logger.info(f"Loaded geometry from cache ({elapsed:.2f}s)")
            logger.debug(f"Cache file: {cache_path.name}")

            return arrays

        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Failed to load cache {cache_path.name}: {e}")
            logger.debug("Cache will be regenerated")
            return None

    def clear_cache(self, cache_name: str = "relief") -> int:
        """
        Clear all cached files for a given cache name.

        Args:
            cache_name: Name of cache item to clear

        Returns:
            Number of files deleted
        """
        if not self.enabled:
            return 0

        deleted_count = 0

        for cache_file in self.cache_dir.glob(f"{cache_name}_*"):
            try:
                cache_file.unlink()
                deleted_count += 1
                logger.debug(f"Deleted: {cache_file.name}")
            except OSError as e:
                logger.warning(f"Failed to delete {cache_file.name}: {e}")

        logger.info(f"Cleared {deleted_count} cache files for '{cache_name}'")
        return deleted_count

    def get_cache_stats(self) -> dict:
        """
        Get statistics about cached files.

        Returns:
            Dictionary with cache statistics
        """
        stats = {
            "cache_dir": str(self.cache_dir),
            "enabled": self.enabled,
            "cache_files": 0,
            "total_size_mb": 0,
            "files": [],
        }

        if not self.cache_dir.exists():
            return stats

        for cache_file in self.cache_dir.glob("*"):
            if cache_file.is_file():
                size_bytes = cache_file.stat().st_size
                stats["cache_files"] += 1
                stats["total_size_mb"] += size_bytes / (1024 * 1024)
                stats["files"].append(
                    {
                        "name": cache_file.name,
                        "size_mb": size_bytes / (1024 * 1024),
                        "mtime": cache_file.stat().st_mtime,
                    }
                )

        return stats
