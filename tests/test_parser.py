"""XML and JSON front-ends: equivalence, validation and version checks."""

import json
import logging
import warnings

import pytest

from conftest import read_fixture
from tmx_loader.errors import SchemaValidation, VersionMismatch
from tmx_loader.parser import TiledParser, check_version, version_tuple


def comparable(document):
    """model_dump() minus the encoding label, which only XML keeps."""
    data = document.model_dump()
    for layer in data.get("layers", []):
        layer.pop("encoding", None)
    return data


def map_header(**extra):
    attrs = {
        "version": "1.10",
        "tiledversion": "1.10.1",
        "orientation": "orthogonal",
        "renderorder": "right-down",
        "width": "1",
        "height": "1",
        "tilewidth": "16",
        "tileheight": "16",
        "infinite": "0",
    }
    attrs.update(extra)
    return "<map " + " ".join(f'{k}="{v}"' for k, v in attrs.items()) + ">"


def json_map(**extra):
    data = {
        "type": "map",
        "version": "1.10",
        "tiledversion": "1.10.1",
        "orientation": "orthogonal",
        "renderorder": "right-down",
        "width": 1,
        "height": 1,
        "tilewidth": 16,
        "tileheight": 16,
        "infinite": False,
        "layers": [],
        "tilesets": [],
    }
    data.update(extra)
    return data


@pytest.fixture
def parser():
    return TiledParser()


# =============================================================================
# Format equivalence
# =============================================================================

def test_orthogonal_map_equivalence(parser):
    from_xml = parser.parse(read_fixture("orthogonal.tmx"))
    from_json = parser.parse_json(read_fixture("orthogonal.tmj"))
    assert comparable(from_xml) == comparable(from_json)


def test_infinite_map_equivalence(parser):
    from_xml = parser.parse(read_fixture("infinite.tmx"))
    from_json = parser.parse_json(read_fixture("infinite.tmj"))
    assert comparable(from_xml) == comparable(from_json)

    layer = from_xml.layers[0]
    assert layer.kind == "chunked"
    assert (layer.startx, layer.starty, layer.width, layer.height) == (0, 0, 32, 16)


def test_external_tileset_equivalence(parser):
    from_xml = parser.parse_external_tileset(read_fixture("tiles.tsx"))
    from_json = parser.parse_external_tileset_json(read_fixture("tiles.tsj"))
    assert from_xml.model_dump() == from_json.model_dump()
    assert from_xml.kind == "single_image"
    assert from_xml.firstgid is None


def test_template_equivalence(parser):
    from_xml = parser.parse_external_template(read_fixture("crate.tx"))
    from_json = parser.parse_external_template_json(read_fixture("crate.tj"))
    assert from_xml.model_dump() == from_json.model_dump()
    assert from_xml.object.kind == "tile"
    assert from_xml.tileset.source == "tiles.tsx"


def test_json_accepts_decoded_dict(parser):
    data = json.loads(read_fixture("orthogonal.tmj"))
    assert comparable(parser.parse_json(data)) == comparable(parser.parse_json(read_fixture("orthogonal.tmj")))


# =============================================================================
# Structure
# =============================================================================

def test_groups_are_flattened_in_document_order(parser):
    tmx = map_header() + """
     <layer id="1" name="a" width="1" height="1"><data encoding="csv">0</data></layer>
     <group id="2" name="g">
      <objectgroup id="3" name="b"/>
      <group id="4" name="h">
       <layer id="5" name="c" width="1" height="1"><data encoding="csv">0</data></layer>
      </group>
     </group>
     <imagelayer id="6" name="d"><image source="sky.png"/></imagelayer>
    </map>"""
    tiled_map = parser.parse(tmx)
    assert [layer.name for layer in tiled_map.layers] == ["a", "b", "c", "d"]
    assert [layer.type for layer in tiled_map.layers] == [
        "tilelayer", "objectgroup", "tilelayer", "imagelayer",
    ]


def test_json_groups_are_flattened(parser):
    data = json_map(layers=[
        {"type": "group", "id": 1, "name": "outer", "layers": [
            {"type": "group", "id": 2, "name": "inner", "layers": [
                {"type": "objectgroup", "id": 3, "name": "deep", "objects": []},
            ]},
            {"type": "tilelayer", "id": 4, "name": "tiles", "width": 1, "height": 1, "data": [0]},
        ]},
    ])
    assert [layer.name for layer in parser.parse_json(data).layers] == ["deep", "tiles"]


def test_object_kinds(parser):
    kinds = {
        '<object id="1" x="0" y="0"/>': "rectangle",
        '<object id="1" x="0" y="0"><point/></object>': "point",
        '<object id="1" x="0" y="0"><ellipse/></object>': "ellipse",
        '<object id="1" x="0" y="0"><polygon points="0,0 1,1 1,0"/></object>': "polygon",
        '<object id="1" x="0" y="0"><polyline points="0,0 1,1"/></object>': "polyline",
        '<object id="1" x="0" y="0"><text>hi</text></object>': "text",
        '<object id="1" gid="3" x="0" y="0"/>': "tile",
        '<object id="1" template="a.tx" x="0" y="0"/>': "template",
    }
    for xml, kind in kinds.items():
        assert parser.parse_object_xml(xml).kind == kind, xml


def test_template_instance_only_carries_overrides(parser):
    obj = parser.parse_object_xml('<object id="9" template="crate.tx" x="4" y="5"/>')
    assert obj.name is None
    assert obj.width is None
    assert obj.visible is None
    assert (obj.x, obj.y) == (4, 5)


def test_property_typing(parser):
    tmx = map_header() + """
     <properties>
      <property name="count" type="int" value="5"/>
      <property name="speed" type="float" value="1.5"/>
      <property name="solid" type="bool" value="true"/>
      <property name="title" value="Level 1"/>
      <property name="notes">multi
line</property>
      <property name="target" type="object" value="12"/>
      <property name="stats" type="class" propertytype="Stats">
       <properties>
        <property name="hp" type="int" value="3"/>
       </properties>
      </property>
     </properties>
    </map>"""
    props = {p.name: p for p in parser.parse(tmx).properties}
    assert props["count"].value == 5
    assert props["speed"].value == 1.5
    assert props["solid"].value is True
    assert props["title"].value == "Level 1"
    assert props["title"].type == "string"
    assert props["notes"].value == "multi\nline"
    assert props["target"].value == 12
    assert props["stats"].value == {"hp": "3"}
    assert props["stats"].propertytype == "Stats"


def test_tile_xml(parser):
    tile = parser.parse_tile_xml("""
    <tile id="4" type="lava" probability="0.5">
     <animation><frame tileid="4" duration="50"/><frame tileid="5" duration="75"/></animation>
    </tile>""")
    assert tile.class_ == "lava"
    assert tile.probability == 0.5
    assert [(f.tileid, f.duration) for f in tile.animation] == [(4, 50), (5, 75)]


def test_image_layer_transparent_color(parser):
    tmx = map_header() + """
     <imagelayer id="1" name="bg" repeatx="1"><image source="sky.png" trans="ff00ff"/></imagelayer>
    </map>"""
    layer = parser.parse(tmx).layers[0]
    assert layer.image == "sky.png"
    assert layer.transparentcolor == "#ff00ff"
    assert layer.repeatx is True


def test_base64_layer_keeps_payload(parser):
    tmx = map_header(width="4", height="4") + """
     <layer id="1" name="g" width="4" height="4">
      <data encoding="base64" compression="zlib">
       eJxjZGBgYAJiZiBmAWJDIDZiwA3YkNhAfQ0AFSAA9g==
      </data>
     </layer>
    </map>"""
    layer = parser.parse(tmx).layers[0]
    assert layer.data == "eJxjZGBgYAJiZiBmAWJDIDZiwA3YkNhAfQ0AFSAA9g=="
    assert layer.compression == "zlib"
    assert layer.encoding == "base64"


# =============================================================================
# Validation
# =============================================================================

def test_strict_requires_tiled_fields(parser):
    minimal = {"tilewidth": 16, "tileheight": 16,
               "layers": [{"type": "tilelayer", "name": "a", "width": 1, "height": 1}]}
    with pytest.raises(SchemaValidation):
        parser.parse_json(minimal)

    lenient = parser.parse_json(minimal, strict=False)
    assert lenient.orientation == "orthogonal"
    assert lenient.layers[0].data == []
    assert lenient.layers[0].kind == "dense"


def test_tile_size_must_be_positive(parser):
    with pytest.raises(SchemaValidation) as info:
        parser.parse_json(json_map(tilewidth=0))
    assert info.value.path == "tilewidth"


def test_layer_cannot_have_data_and_chunks(parser):
    layer = {"type": "tilelayer", "id": 1, "name": "a", "width": 1, "height": 1,
             "data": [0], "chunks": [{"x": 0, "y": 0, "width": 1, "height": 1, "data": [0]}]}
    with pytest.raises(SchemaValidation):
        parser.parse_json(json_map(layers=[layer]))


def test_chunked_layer_origin_defaults_to_first_chunk(parser):
    layer = {"type": "tilelayer", "id": 1, "name": "a", "width": 2, "height": 1,
             "chunks": [{"x": -4, "y": 8, "width": 1, "height": 1, "data": [1]},
                        {"x": -3, "y": 8, "width": 1, "height": 1, "data": [1]}]}
    parsed = parser.parse_json(json_map(infinite=True, layers=[layer])).layers[0]
    assert (parsed.startx, parsed.starty) == (-4, 8)


def test_overlapping_tilesets_are_rejected(parser):
    tilesets = [
        {"firstgid": 1, "name": "a", "image": "a.png", "columns": 8, "tilecount": 48,
         "tilewidth": 16, "tileheight": 16},
        {"firstgid": 10, "name": "b", "image": "b.png", "columns": 8, "tilecount": 8,
         "tilewidth": 16, "tileheight": 16},
    ]
    with pytest.raises(SchemaValidation):
        parser.parse_json(json_map(tilesets=tilesets))
    # lenient mode trusts the tileset list
    assert len(parser.parse_json(json_map(tilesets=tilesets), strict=False).tilesets) == 2


def test_tileset_variants(parser):
    tilesets = [
        {"firstgid": 1, "source": "a.tsx"},
        {"firstgid": 2, "name": "b", "image": "b.png", "columns": 1, "tilecount": 1,
         "tilewidth": 16, "tileheight": 16},
        {"firstgid": 3, "name": "c", "columns": 0, "tilecount": 1, "tilewidth": 16,
         "tileheight": 16, "tiles": [{"id": 0, "image": "c.png", "imagewidth": 8, "imageheight": 8}]},
    ]
    parsed = parser.parse_json(json_map(tilesets=tilesets))
    assert [t.kind for t in parsed.tilesets] == ["external", "single_image", "collection"]


def test_invalid_documents(parser):
    with pytest.raises(SchemaValidation) as info:
        parser.parse("<map><layer></map>")
    assert info.value.path == "<document>"

    with pytest.raises(SchemaValidation):
        parser.parse_external_tileset(read_fixture("orthogonal.tmx"))

    with pytest.raises(SchemaValidation):
        parser.parse_json("{not json")

    with pytest.raises(SchemaValidation):
        parser.parse_json("[1, 2, 3]")


def test_class_wins_over_type(parser, caplog):
    with caplog.at_level(logging.WARNING, logger="tmx_loader"):
        obj = parser.parse_object_xml('<object id="3" class="Door" type="Gate" x="0" y="0"/>')
    assert obj.class_ == "Door"
    assert obj.type == "Door"
    assert "Gate" in caplog.text

    legacy = parser.parse_object_xml('<object id="4" type="Gate" x="0" y="0"/>')
    assert legacy.class_ == "Gate"


# =============================================================================
# Version check
# =============================================================================

def test_version_tuple():
    assert version_tuple("1.10.1") == (1, 10, 1)
    assert version_tuple("1.9.2-beta") == (1, 9, 2)
    assert version_tuple("1.10") < version_tuple("1.10.1") < version_tuple("1.11")


def test_older_version_warns(parser):
    with pytest.warns(VersionMismatch):
        tiled_map = parser.parse_json(json_map(tiledversion="1.8.0"))
    assert tiled_map.tiledversion == "1.8.0"


def test_older_templates_warn(parser):
    tx = read_fixture("crate.tx").replace("<template>", '<template version="1.8" tiledversion="1.8.0">')
    with pytest.warns(VersionMismatch, match="crate.tx"):
        template = parser.parse_external_template(tx, source="maps/crate.tx")
    assert template.tiledversion == "1.8.0"

    tj = dict(json.loads(read_fixture("crate.tj")), version=1.4, tiledversion="1.4.2")
    with pytest.warns(VersionMismatch):
        template = parser.parse_external_template_json(tj)
    assert template.version == "1.4"

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        parser.parse_external_template(read_fixture("crate.tx"))


def test_current_and_newer_versions_do_not_warn(parser):
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        parser.parse_json(json_map(tiledversion="1.10.1"))
        parser.parse_json(json_map(tiledversion="1.11.0"))
        assert check_version(None) is True
