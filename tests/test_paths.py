"""Path map rules and document-relative references."""

import re

import pytest

from tmx_loader.paths import (
    PathMapRule,
    extension_of,
    filename_from_path,
    map_path,
    normalize_path,
    path_relative_to_base,
)

PACKED = PathMapRule("tilemap_packed.png", "/assets/tilemap_packed.png")


def test_rule_replaces_whole_reference():
    assert path_relative_to_base(".", "/some/path/with/tilemap_packed.png", [PACKED]) == \
        "/assets/tilemap_packed.png"
    assert path_relative_to_base("./some/base.file", "../elsewhere/tilemap_packed.png", [PACKED]) == \
        "/assets/tilemap_packed.png"


def test_unmatched_reference_is_relative_to_document():
    assert path_relative_to_base(".", "some/path/with/tileset.tsx", [PACKED]) == \
        "some/path/with/tileset.tsx"
    assert path_relative_to_base("./base/here/file.tmx", "some/path/with/tileset.tsx", [PACKED]) == \
        "./base/here/some/path/with/tileset.tsx"


def test_base_directory_without_file():
    assert path_relative_to_base("maps/level1", "tiles.tsx") == "maps/level1/tiles.tsx"


def test_absolute_reference_is_kept():
    assert path_relative_to_base("maps/level1.tmx", "/shared/tiles.tsx") == "/shared/tiles.tsx"


def test_sibling_directories_resolve_to_one_path():
    from_map = path_relative_to_base("maps/level.tmj", "../tilesets/t.tsj")
    from_template = path_relative_to_base("maps/../templates/crate.tj", "../tilesets/t.tsj")
    assert from_map == from_template == "tilesets/t.tsj"


@pytest.mark.parametrize("path, normalized", [
    ("maps/../templates/../tilesets/t.tsj", "tilesets/t.tsj"),
    ("./maps/./level.tmx", "./maps/level.tmx"),
    ("./some/../x.png", "./x.png"),
    ("../../images/a.png", "../../images/a.png"),
    ("maps/../../shared/a.png", "../shared/a.png"),
    ("/assets/maps/../tiles.tsx", "/assets/tiles.tsx"),
    ("http://host/maps/../tiles.tsx", "http://host/tiles.tsx"),
])
def test_normalize_path(path, normalized):
    assert normalize_path(path) == normalized


def test_first_matching_rule_wins():
    rules = [
        PathMapRule("tiles", "/first/tiles.tsx"),
        PathMapRule("tiles.tsx", "/second/tiles.tsx"),
    ]
    assert map_path("../tiles.tsx", rules) == "/first/tiles.tsx"
    assert map_path("terrain.tsx", rules) == "terrain.tsx"
    assert map_path("terrain.tsx", None) == "terrain.tsx"


def test_regex_rule_with_match_token():
    rule = PathMapRule(re.compile(r"[^/]+\.tsx$"), "/assets/tilesets/[match]")
    assert map_path("../../tilesets/terrain.tsx", [rule]) == "/assets/tilesets/terrain.tsx"
    assert map_path("../../images/terrain.png", [rule]) == "../../images/terrain.png"


@pytest.mark.parametrize("path, name", [
    ("maps/level1.tmx", "level1.tmx"),
    ("http://host/maps/level1.tmx?v=2", "level1.tmx"),
    ("C:\\games\\maps\\crate.tx", "crate.tx"),
    ("level.json#fragment", "level.json"),
])
def test_filename_from_path(path, name):
    assert filename_from_path(path) == name


def test_filename_from_path_without_file():
    with pytest.raises(ValueError):
        filename_from_path("maps/")


def test_extension_of():
    assert extension_of("maps/Level1.TMX") == "tmx"
    assert extension_of("maps/level1.tmj") == "tmj"
    assert extension_of("maps/") == ""
