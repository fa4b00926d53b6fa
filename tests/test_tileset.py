"""Tileset sprites, tile metadata and flipped image output."""

import logging

import pytest
from PIL import Image

from tmx_loader.errors import TileNotFound
from tmx_loader.gid import (
    FLIPPED_DIAGONALLY_FLAG as D,
    FLIPPED_HORIZONTALLY_FLAG as H,
    FLIPPED_VERTICALLY_FLAG as V,
)
from tmx_loader.images import ImageSource
from tmx_loader.schema import TilesetCollection, TilesetSingleImage
from tmx_loader.tileset import Tileset


def single_image(**extra):
    data = {
        "name": "terrain",
        "image": "terrain.png",
        "columns": 4,
        "tilecount": 8,
        "tilewidth": 16,
        "tileheight": 16,
    }
    data.update(extra)
    return TilesetSingleImage.model_validate(data)


def test_sprite_grid_with_margin_and_spacing():
    tileset = Tileset(single_image(margin=1, spacing=2), firstgid=10)
    sprite = tileset.get_sprite_for_gid(10 + 5)
    # local 5 -> column 1, row 1
    assert (sprite.x, sprite.y) == (1 + 18, 1 + 18)
    assert (sprite.width, sprite.height) == (16, 16)
    assert not sprite.is_transformed


def test_unflipped_sprites_are_shared_and_flipped_ones_cloned():
    tileset = Tileset(single_image(), firstgid=1)
    plain = tileset.get_sprite_for_gid(3)
    assert tileset.get_sprite_for_gid(3) is plain

    flipped = tileset.get_sprite_for_gid(3 | H)
    assert flipped is not plain
    assert flipped.scale == (-1, 1)
    assert flipped.flip.horizontal
    assert plain.scale == (1.0, 1.0)
    assert (flipped.x, flipped.y) == (plain.x, plain.y)


def test_gid_outside_sheet():
    tileset = Tileset(single_image(), firstgid=1)
    assert tileset.contains_gid(8)
    assert not tileset.contains_gid(9)
    with pytest.raises(TileNotFound) as info:
        tileset.get_sprite_for_gid(9)
    assert info.value.local_id == 8


def test_collection_tileset():
    document = TilesetCollection.model_validate({
        "name": "props",
        "columns": 0,
        "tilecount": 2,
        "tilewidth": 32,
        "tileheight": 32,
        "tiles": [
            {"id": 0, "image": "barrel.png", "imagewidth": 24, "imageheight": 30},
            {"id": 7, "image": "tree.png", "imagewidth": 64, "imageheight": 96},
        ],
    })
    tileset = Tileset(document, firstgid=100, tile_images={0: "barrel", 7: "tree"})

    assert tileset.tilecount == 8
    tree = tileset.get_sprite_for_gid(107)
    assert (tree.image, tree.width, tree.height) == ("tree", 64, 96)

    with pytest.raises(TileNotFound):
        tileset.get_sprite_for_gid(103)


def test_tile_metadata():
    tileset = Tileset(single_image(tiles=[{
        "id": 2,
        "type": "lava",
        "properties": [
            {"name": "Name", "type": "string", "value": "Hot Rock"},
            {"name": "AnimationStrategy", "type": "string", "value": "bounce"},
        ],
    }]), firstgid=5)

    tile = tileset.get_tile_by_gid(7 | V)
    assert tile.class_ == "lava"
    assert tile.name == "Hot Rock"
    assert tile.gid == 7
    assert tile.tileset is tileset
    assert tileset.get_tile(2) is tile
    assert tileset.get_tile_by_gid(6) is None


def test_unknown_animation_strategy_falls_back_to_loop(caplog):
    tileset = Tileset(single_image(tiles=[{
        "id": 0,
        "properties": [{"name": "animationstrategy", "type": "string", "value": "bounce"}],
    }]), firstgid=1)
    with caplog.at_level(logging.WARNING, logger="tmx_loader"):
        assert tileset.get_tile(0).animation_strategy == "loop"
    assert "bounce" in caplog.text


@pytest.mark.parametrize("alignment, orientation, anchor", [
    (None, "orthogonal", (0.0, 1.0)),
    (None, "isometric", (0.5, 1.0)),
    ("unspecified", "orthogonal", (0.0, 1.0)),
    ("center", "orthogonal", (0.5, 0.5)),
    ("topright", "isometric", (1.0, 0.0)),
])
def test_alignment_anchor(alignment, orientation, anchor):
    tileset = Tileset(single_image(objectalignment=alignment), firstgid=1)
    assert tileset.alignment_anchor(orientation) == anchor


def test_tile_offset_and_properties():
    tileset = Tileset(single_image(
        tileoffset={"x": 2, "y": -4},
        properties=[{"name": "Biome", "type": "string", "value": "Forest"}],
    ), firstgid=1)
    assert tileset.tile_offset == (2, -4)
    assert tileset.properties == {"biome": "Forest"}


def checkerboard():
    """2x1 tiles of 2x2 pixels: red/green on top, blue/white below."""
    image = Image.new("RGBA", (4, 2))
    red, green, blue, white = (255, 0, 0, 255), (0, 255, 0, 255), (0, 0, 255, 255), (255, 255, 255, 255)
    image.putpixel((2, 0), red)
    image.putpixel((3, 0), green)
    image.putpixel((2, 1), blue)
    image.putpixel((3, 1), white)
    return image


@pytest.mark.parametrize("flags, top_left, top_right", [
    (0, (255, 0, 0, 255), (0, 255, 0, 255)),
    (H, (0, 255, 0, 255), (255, 0, 0, 255)),
    (V, (0, 0, 255, 255), (255, 255, 255, 255)),
    (D, (255, 0, 0, 255), (0, 0, 255, 255)),
])
def test_sprite_to_pil_applies_flips(flags, top_left, top_right):
    source = ImageSource("sheet.png")
    source.image = checkerboard()
    tileset = Tileset(single_image(columns=2, tilecount=2, tilewidth=2, tileheight=2),
                      firstgid=1, image=source)

    cell = tileset.get_sprite_for_gid(2 | flags).to_pil()
    assert cell.size == (2, 2)
    assert cell.getpixel((0, 0)) == top_left
    assert cell.getpixel((1, 0)) == top_right


def test_headless_sprite_cannot_be_cut():
    tileset = Tileset(single_image(), firstgid=1)
    with pytest.raises(RuntimeError):
        tileset.get_sprite_for_gid(1).to_pil()
