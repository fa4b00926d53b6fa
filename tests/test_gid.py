"""Flip flags, the flip chain and the isometric projection."""

import math

import numpy as np
import pytest

from tmx_loader.gid import (
    FLIPPED_DIAGONALLY_FLAG as D,
    FLIPPED_HORIZONTALLY_FLAG as H,
    FLIPPED_VERTICALLY_FLAG as V,
    FlipFlags,
    canonical_gid,
    flip_bits,
    flip_matrix,
    is_flipped_diagonally,
    is_flipped_horizontally,
    is_flipped_vertically,
    isometric_points_to_world,
    isometric_to_world,
    sprite_flip,
    transform_points,
)

GIDS = [1, 2, 49, 50, 119, 120, 4096, 0x1FFFFFFF]


@pytest.mark.parametrize("gid", GIDS)
def test_canonical_gid_strips_every_flag(gid):
    assert canonical_gid(gid | H | V | D) == canonical_gid(gid) == gid


@pytest.mark.parametrize("gid", GIDS)
@pytest.mark.parametrize("flags", [0, H, V, D, H | V, H | D, V | D, H | V | D])
def test_flags_are_independent(gid, flags):
    flipped = gid | flags
    assert is_flipped_horizontally(flipped) == bool(flags & H)
    assert is_flipped_vertically(flipped) == bool(flags & V)
    assert is_flipped_diagonally(flipped) == bool(flags & D)
    assert flip_bits(flipped) == flags
    assert FlipFlags.from_gid(flipped).any == bool(flags)


def test_no_flip_is_identity():
    assert np.array_equal(flip_matrix(5, 16, 16), np.identity(3))
    points = [[1, 2], [3, 4]]
    assert transform_points(points, 5, 16, 16).tolist() == [[1.0, 2.0], [3.0, 4.0]]


def test_single_flips():
    point = [[2, 4]]
    assert transform_points(point, 1 | H, 16, 32).tolist() == [[14.0, 4.0]]
    assert transform_points(point, 1 | V, 16, 32).tolist() == [[2.0, 28.0]]
    assert transform_points(point, 1 | D, 16, 32).tolist() == [[4.0, 2.0]]


def test_flip_chain_order_is_diagonal_horizontal_vertical():
    # diagonal (2,4)->(4,2), horizontal ->(12,2), vertical ->(12,14)
    assert transform_points([[2, 4]], 1 | D | H | V, 16, 16).tolist() == [[12.0, 14.0]]
    # horizontal then diagonal would give (4,14); the chain never does that
    assert transform_points([[2, 4]], 1 | D | H, 16, 16).tolist() == [[12.0, 2.0]]


def test_sprite_flip():
    assert sprite_flip(1) == (0.0, (1.0, 1.0))
    rotation, scale = sprite_flip(1 | H)
    assert rotation == 0.0
    assert scale == (-1, 1)

    rotation, scale = sprite_flip(1 | V)
    assert scale == (1, -1)

    rotation, scale = sprite_flip(1 | D)
    assert rotation == pytest.approx(-math.pi / 2)
    assert scale == (-1.0, 1.0)

    # diagonal + horizontal is a plain 90 degree rotation
    rotation, scale = sprite_flip(1 | D | H)
    assert rotation == pytest.approx(-math.pi / 2)
    assert scale == (-1, -1)


def test_isometric_projection_uses_tile_height_as_unit():
    # one tile down the x axis of a 32x16 map
    assert isometric_to_world(16, 0, 32, 16) == (16.0, 8.0)
    assert isometric_to_world(0, 16, 32, 16) == (-16.0, 8.0)
    assert isometric_to_world(16, 16, 32, 16) == (0.0, 16.0)


def test_vectorized_projection_matches_scalar():
    points = [[16, 0], [0, 16], [8, 24]]
    projected = isometric_points_to_world(points, 64, 32)
    for (x, y), row in zip(points, projected.tolist()):
        assert tuple(row) == pytest.approx(isometric_to_world(x, y, 64, 32))
