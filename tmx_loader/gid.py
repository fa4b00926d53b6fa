"""
Global tile id (GID) helpers.

=============================================================================
FLIP FLAGS
=============================================================================

The 3 most significant bits of a 32 bit GID are flip flags:

    bit 31  0x80000000  flipped horizontally
    bit 30  0x40000000  flipped vertically
    bit 29  0x20000000  flipped diagonally (anti-diagonal, x <-> y)

The remaining 29 bits are the canonical GID used for tileset lookup.

    gid = 0x80000001  -> canonical 1, horizontal flip
    gid = 0xA0000005  -> canonical 5, horizontal + diagonal flip

=============================================================================
FLIP CHAIN
=============================================================================

Geometry attached to a tile (collision polygons, boxes, circle centers) is
transformed in a fixed order, each step anchored at the tile size:

    1. diagonal   : (x, y) -> (y, x)
    2. horizontal : (x, y) -> (tile_width - x, y)
    3. vertical   : (x, y) -> (x, tile_height - y)

Swapping the order gives a different picture, so the chain is always
built by flip_matrix() and never by hand.

=============================================================================
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np


FLIPPED_HORIZONTALLY_FLAG = 0x80000000
FLIPPED_VERTICALLY_FLAG = 0x40000000
FLIPPED_DIAGONALLY_FLAG = 0x20000000

FLIP_MASK = (FLIPPED_HORIZONTALLY_FLAG |
             FLIPPED_VERTICALLY_FLAG |
             FLIPPED_DIAGONALLY_FLAG)


def is_flipped_horizontally(gid: int) -> bool:
    return bool(gid & FLIPPED_HORIZONTALLY_FLAG)


def is_flipped_vertically(gid: int) -> bool:
    return bool(gid & FLIPPED_VERTICALLY_FLAG)


def is_flipped_diagonally(gid: int) -> bool:
    return bool(gid & FLIPPED_DIAGONALLY_FLAG)


def canonical_gid(gid: int) -> int:
    """Strip the flip flags, leaving the id used for tileset lookup."""
    return gid & ~FLIP_MASK & 0xFFFFFFFF


def flip_bits(gid: int) -> int:
    """Only the flip flags of a GID."""
    return gid & FLIP_MASK


def has_flip(gid: int) -> bool:
    return bool(gid & FLIP_MASK)


@dataclass(frozen=True)
class FlipFlags:
    """The three flags of one GID, decoded once."""
    horizontal: bool = False
    vertical: bool = False
    diagonal: bool = False

    @classmethod
    def from_gid(cls, gid: int) -> 'FlipFlags':
        return cls(
            horizontal=is_flipped_horizontally(gid),
            vertical=is_flipped_vertically(gid),
            diagonal=is_flipped_diagonally(gid),
        )

    @property
    def any(self) -> bool:
        return self.horizontal or self.vertical or self.diagonal


# =============================================================================
# AFFINE TRANSFORMS
# =============================================================================

def diagonal_flip_matrix() -> np.ndarray:
    """Rotate -90 degrees then mirror x, which swaps x and y."""
    return np.array([
        [0.0, 1.0, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0],
    ])


def horizontal_flip_matrix(tile_width: float) -> np.ndarray:
    """Mirror about the tile's vertical mid-line."""
    return np.array([
        [-1.0, 0.0, float(tile_width)],
        [0.0, 1.0, 0.0],
        [0.0, 0.0, 1.0],
    ])


def vertical_flip_matrix(tile_height: float) -> np.ndarray:
    """Mirror about the tile's horizontal mid-line."""
    return np.array([
        [1.0, 0.0, 0.0],
        [0.0, -1.0, float(tile_height)],
        [0.0, 0.0, 1.0],
    ])


def flip_matrix(gid: int, tile_width: float, tile_height: float) -> np.ndarray:
    """
    Compose the flip chain of a GID into one 3x3 affine matrix.

    Parameters:
    -----------
    gid : int
        Raw GID, flags included
    tile_width, tile_height : float
        Size of the tile the geometry belongs to

    Returns:
    --------
    np.ndarray : 3x3 matrix, identity when no flag is set
    """
    matrix = np.identity(3)
    # later steps multiply on the left so they apply after earlier ones
    if is_flipped_diagonally(gid):
        matrix = diagonal_flip_matrix() @ matrix
    if is_flipped_horizontally(gid):
        matrix = horizontal_flip_matrix(tile_width) @ matrix
    if is_flipped_vertically(gid):
        matrix = vertical_flip_matrix(tile_height) @ matrix
    return matrix


def apply_matrix(matrix: np.ndarray, points) -> np.ndarray:
    """Apply a 3x3 affine matrix to an (N, 2) array of points."""
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    if pts.size == 0:
        return pts
    homogeneous = np.hstack([pts, np.ones((pts.shape[0], 1))])
    return (homogeneous @ matrix.T)[:, :2]


def transform_points(points, gid: int, tile_width: float,
                     tile_height: float) -> np.ndarray:
    """Run points through the flip chain of gid."""
    if not has_flip(gid):
        return np.asarray(points, dtype=float).reshape(-1, 2)
    return apply_matrix(flip_matrix(gid, tile_width, tile_height), points)


def sprite_flip(gid: int,
                scale: Tuple[float, float] = (1.0, 1.0)) -> Tuple[float, Tuple[float, float]]:
    """
    Rotation and scale that draw a tile sprite the way Tiled does.

    Returns (rotation in radians, (scale_x, scale_y)). The diagonal flag
    turns into a -90 degree rotation plus a mirror; the horizontal and
    vertical flags then mirror along the axis that ends up on screen
    horizontal / vertical after that rotation.
    """
    h = is_flipped_horizontally(gid)
    v = is_flipped_vertically(gid)
    d = is_flipped_diagonally(gid)

    rotation = 0.0
    sx, sy = scale
    if d:
        rotation = -np.pi / 2
        sx, sy = -1.0, 1.0
    if h:
        sx, sy = (1 if d else -1) * sx, (-1 if d else 1) * sy
    if v:
        sx, sy = (-1 if d else 1) * sx, (1 if d else -1) * sy
    return rotation, (sx, sy)


# =============================================================================
# ISOMETRIC PROJECTION
# =============================================================================

def isometric_to_world(x: float, y: float, tile_width: float,
                       tile_height: float) -> Tuple[float, float]:
    """
    Convert Tiled isometric pixel coordinates to world coordinates.

    Tiled stores isometric object positions with the tile *height* as the
    unit on both axes:

        tile_x = x / tile_height
        tile_y = y / tile_height
        world  = ((tile_x - tile_y) * tile_width / 2,
                  (tile_x + tile_y) * tile_height / 2)

    Use the map's tile size for map-space positions and the tileset's own
    tile size for tileset-local geometry; the two differ when a tileset's
    tiles are not the map's grid size.
    """
    tile_x = x / tile_height
    tile_y = y / tile_height
    return ((tile_x - tile_y) * tile_width / 2,
            (tile_x + tile_y) * tile_height / 2)


def isometric_points_to_world(points: Sequence, tile_width: float,
                              tile_height: float) -> np.ndarray:
    """Vectorized isometric_to_world over an (N, 2) array."""
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    tile_x = pts[:, 0] / tile_height
    tile_y = pts[:, 1] / tile_height
    return np.column_stack([
        (tile_x - tile_y) * tile_width / 2,
        (tile_x + tile_y) * tile_height / 2,
    ])
