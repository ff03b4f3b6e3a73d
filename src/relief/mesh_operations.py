"""
Mesh generation operations for map relief.

This module lays out the regular grid mesh for a height field: vertex
positions on a fixed square footprint, UVs, triangle indices and smooth
per-vertex normals. It also applies the rigid-body placement (lay flat,
tilt, vertical offset) the renderer expects.

The mesh is always rebuilt in full; there is no incremental update.
"""

import logging
from dataclasses import dataclass

import numpy as np

from src import config

from .errors import DegenerateMeshError, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass
class MeshGeometry:
    """Vertex, normal, UV and index buffers of an N x N grid mesh."""

    positions: np.ndarray
    """(N*N, 3) float32 vertex positions, height along z."""

    normals: np.ndarray
    """(N*N, 3) float32 unit vertex normals."""

    uvs: np.ndarray
    """(N*N, 2) float32 texture coordinates."""

    indices: np.ndarray
    """(2*(N-1)^2, 3) uint32 triangle vertex indices."""

    segments: int
    """Grid side N."""

    height_scale: float
    """Multiplier that was applied to the height field."""

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices)

    def flat_positions(self) -> np.ndarray:
        """Positions as a flat x, y, z, x, y, z, ... buffer."""
        return self.positions.ravel()


@dataclass
class Placement:
    """World-space positions and normals of a placed mesh."""

    positions: np.ndarray
    normals: np.ndarray
    matrix: np.ndarray
    """3x3 rotation that was applied before the vertical offset."""

    y_position: float


def grid_spacing(segments, footprint=config.FOOTPRINT_SIZE):
    """Distance between adjacent vertices for an N x N grid on the footprint."""
    if segments < 2:
        raise DegenerateMeshError(
            f"A {segments}x{segments} grid has no triangles; at least 2x2 is required"
        )
    return footprint / (segments - 1)


def generate_vertex_positions(height_field, height_scale=1.0, footprint=config.FOOTPRINT_SIZE):
    """
    Generate 3D vertex positions from a height field.

    Vertex (i, j) (row i, column j) sits at x = -footprint/2 + j * spacing,
    y = footprint/2 - i * spacing, z = height[i, j] * height_scale, so row 0
    (the top of the image) is at +y.

    Args:
        height_field (np.ndarray): (N, N) normalized heights
        height_scale (float): Multiplier for height values (default: 1.0)
        footprint (float): Side length of the square footprint (default: 200)

    Returns:
        np.ndarray: (N*N, 3) float32 positions in row-major vertex order
    """
    segments = height_field.shape[0]
    spacing = grid_spacing(segments, footprint)
    half = footprint / 2.0

    rows, cols = np.mgrid[0:segments, 0:segments]

    positions = np.column_stack(
        [
            (-half + cols * spacing).ravel(),  # x position
            (half - rows * spacing).ravel(),  # y position
            (height_field * height_scale).ravel(),  # z position with height scaling
        ]
    )
    return positions.astype(np.float32)


def generate_uvs(segments):
    """
    Generate texture coordinates for an N x N grid.

    UV (0, 1) is the top-left image corner, (1, 0) the bottom-right.

    Args:
        segments (int): Grid side N

    Returns:
        np.ndarray: (N*N, 2) float32 UVs
    """
    grid_spacing(segments)
    rows, cols = np.mgrid[0:segments, 0:segments]
    u = cols / (segments - 1)
    v = 1.0 - rows / (segments - 1)
    return np.column_stack([u.ravel(), v.ravel()]).astype(np.float32)


def generate_faces(segments):
    """
    Generate triangle indices for an N x N grid.

    Each of the (N-1)^2 quads is split into two triangles. With
    a = i*N + j, b = (i+1)*N + j, c = (i+1)*N + j + 1, d = i*N + j + 1
    the triangles are (a, b, d) and (b, c, d), counter-clockwise seen from +z.

    Args:
        segments (int): Grid side N

    Returns:
        np.ndarray: (2*(N-1)^2, 3) uint32 indices
    """
    grid_spacing(segments)

    rows, cols = np.mgrid[0 : segments - 1, 0 : segments - 1]
    a = (rows * segments + cols).ravel()
    b = a + segments
    c = b + 1
    d = a + 1

    faces = np.empty((2 * len(a), 3), dtype=np.uint32)
    faces[0::2] = np.column_stack([a, b, d])
    faces[1::2] = np.column_stack([b, c, d])
    return faces


def compute_vertex_normals(positions, faces):
    """
    Compute smooth per-vertex normals.

    Face normals (unnormalized, so larger faces weigh more) are summed onto
    their three vertices and the sums normalized.

    Args:
        positions (np.ndarray): (V, 3) vertex positions
        faces (np.ndarray): (F, 3) triangle indices

    Returns:
        np.ndarray: (V, 3) float32 unit normals
    """
    pos = positions.astype(np.float64)
    v0 = pos[faces[:, 0]]
    v1 = pos[faces[:, 1]]
    v2 = pos[faces[:, 2]]
    face_normals = np.cross(v1 - v0, v2 - v0)

    normals = np.zeros_like(pos)
    for corner in range(3):
        np.add.at(normals, faces[:, corner], face_normals)

    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    lengths[lengths == 0] = 1.0
    return (normals / lengths).astype(np.float32)


def build_mesh(height_field, height_scale=1.0, footprint=config.FOOTPRINT_SIZE):
    """
    Build the full grid mesh for a height field.

    Args:
        height_field (np.ndarray): (N, N) heights in [0, 1]
        height_scale (float): Multiplier applied to heights (default: 1.0)
        footprint (float): Side length of the square footprint (default: 200)

    Returns:
        MeshGeometry: Positions, normals, UVs and indices

    Raises:
        InvalidInputError: If the height field is not a square 2D grid
        DegenerateMeshError: If the grid is 1x1
    """
    if height_field.ndim != 2 or height_field.shape[0] != height_field.shape[1]:
        raise InvalidInputError(f"Height field must be a square 2D grid, got {height_field.shape}")
    if height_field.size == 0:
        raise InvalidInputError("Height field is empty")

    segments = height_field.shape[0]
    grid_spacing(segments, footprint)

    logger.info(f"Building {segments}x{segments} mesh (height_scale={height_scale})")

    positions = generate_vertex_positions(height_field, height_scale, footprint)
    faces = generate_faces(segments)
    uvs = generate_uvs(segments)
    normals = compute_vertex_normals(positions, faces)

    logger.debug(f"Mesh has {len(positions)} vertices and {len(faces)} triangles")

    return MeshGeometry(
        positions=positions,
        normals=normals,
        uvs=uvs,
        indices=faces,
        segments=segments,
        height_scale=height_scale,
    )


def _rotation_x(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def _rotation_z(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def placement_matrix(tilt_x=0.0, tilt_z=0.0):
    """
    Rotation that lays the mesh flat and applies the tilt.

    The grid is built in the xy plane with height along z; the renderer's
    world is y-up, so the mesh is rotated -90 degrees about X. Tilts are added
    as an X rotation and a following Z rotation (intrinsic XYZ order).

    Args:
        tilt_x (float): Extra rotation about X, in degrees
        tilt_z (float): Rotation about Z, in degrees

    Returns:
        np.ndarray: 3x3 rotation matrix
    """
    return _rotation_x(-np.pi / 2 + np.radians(tilt_x)) @ _rotation_z(np.radians(tilt_z))


def place_mesh(geometry, y_position=0.0, tilt_x=0.0, tilt_z=0.0):
    """
    Apply the output placement to a finished mesh.

    Placement is a rigid-body transform and never affects the height field.

    Args:
        geometry (MeshGeometry): Mesh to place
        y_position (float): Vertical offset in world units
        tilt_x (float): Tilt about X, in degrees
        tilt_z (float): Tilt about Z, in degrees

    Returns:
        Placement: World-space positions and normals
    """
    matrix = placement_matrix(tilt_x, tilt_z)

    positions = geometry.positions.astype(np.float64) @ matrix.T
    positions[:, 1] += y_position
    normals = geometry.normals.astype(np.float64) @ matrix.T

    return Placement(
        positions=positions.astype(np.float32),
        normals=normals.astype(np.float32),
        matrix=matrix,
        y_position=y_position,
    )
