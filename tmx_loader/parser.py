"""
Format parser: TMX/TSX/TX (XML) and TMJ/TSJ/TJ (JSON) to the canonical tree.

=============================================================================
HOW THE XML FRONT-END WORKS
=============================================================================

The JSON dialect is the target shape. Each XML element is turned into a
dict of that shape by a dedicated routine, then validated by the same
pydantic models as JSON input:

    <map>          -> parse()
    <tileset>      -> parse_tileset()
    <layer>        -> parse_tile_layer()
    <objectgroup>  -> parse_object_group()
    <imagelayer>   -> parse_image_layer()
    <object>       -> parse_object()
    <properties>   -> parse_properties()
    <group>        -> flattened: its layers go straight into map.layers

XML attributes are all strings, so they are typed by name using the
NUMBER_ATTRIBUTES and BOOLEAN_ATTRIBUTES tables; anything else stays a
string.

=============================================================================
LAYER ORDER
=============================================================================

Layers keep document order across groups:

    <layer id="1"/>                 -> layers[0]
    <group>
        <objectgroup id="3"/>       -> layers[1]
        <group><layer id="4"/>      -> layers[2]
    </group>
    <imagelayer id="5"/>            -> layers[3]

JSON "group" layers are flattened the same way.

=============================================================================
"""

import json
import re
import warnings
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from .config import SUPPORTED_TILED_VERSION
from .decoder import chunk_bounds, decode_csv, decode_xml_tiles
from .errors import SchemaValidation, VersionMismatch
from .log import get_logger
from .schema import (
    TiledMap, TiledObject, TiledTemplate, TiledTile, TilesetDocument,
    coerce_bool, coerce_number,
)

logger = get_logger('parser')


# Attribute names whose values are numbers
NUMBER_ATTRIBUTES = frozenset([
    'width', 'height', 'columns', 'firstgid', 'spacing', 'margin',
    'tilecount', 'tilewidth', 'tileheight', 'opacity', 'compressionlevel',
    'nextlayerid', 'nextobjectid', 'parallaxoriginx', 'parallaxoriginy',
    'parallaxx', 'parallaxy', 'hexsidelength', 'offsetx', 'offsety',
    'id', 'gid', 'x', 'y', 'rotation', 'probability', 'tileid', 'duration',
])

# Attribute names whose values are booleans
BOOLEAN_ATTRIBUTES = frozenset([
    'infinite', 'visible', 'repeatx', 'repeaty',
])

TEXT_NUMBER_ATTRIBUTES = frozenset(['pixelsize'])
TEXT_BOOLEAN_ATTRIBUTES = frozenset([
    'wrap', 'bold', 'italic', 'underline', 'strikeout', 'kerning',
])

_tileset_adapter = TypeAdapter(TilesetDocument)

Document = Union[str, bytes]
JsonDocument = Union[str, bytes, Dict[str, Any]]


# =============================================================================
# VERSION CHECK
# =============================================================================

def version_tuple(version: str) -> Tuple[int, ...]:
    """'1.10.1' -> (1, 10, 1); '1.9.2-beta' -> (1, 9, 2)."""
    parts = []
    for piece in version.split('.'):
        found = re.match(r'\d+', piece.strip())
        if not found:
            break
        parts.append(int(found.group(0)))
    return tuple(parts)


def check_version(tiled_version: Optional[str], source: str = '<document>') -> bool:
    """
    Warn when a document was saved by an older Tiled than we support.

    Returns True when the version is supported (or unknown). Never raises.
    """
    if not tiled_version:
        return True

    found = version_tuple(tiled_version)
    supported = version_tuple(SUPPORTED_TILED_VERSION)
    if found and found < supported:
        message = (
            f"{source} was saved with Tiled {tiled_version}, this loader "
            f"supports {SUPPORTED_TILED_VERSION}. Re-saving it with a newer "
            f"Tiled is recommended, some features may not load correctly"
        )
        logger.warning(message)
        warnings.warn(message, VersionMismatch, stacklevel=3)
        return False
    return True


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

def _first_error(error: ValidationError) -> Tuple[str, str]:
    first = error.errors()[0]
    path = '.'.join(str(part) for part in first.get('loc', ()))
    return path, first.get('msg', str(error))


def validate(model, data: Any, strict: bool = True):
    """
    Validate data against a model class (or TypeAdapter), converting
    pydantic errors into SchemaValidation.
    """
    try:
        if isinstance(model, TypeAdapter):
            return model.validate_python(data, context={'strict': strict})
        return model.model_validate(data, context={'strict': strict})
    except ValidationError as e:
        path, reason = _first_error(e)
        raise SchemaValidation(path, reason) from e


def flatten_json_layers(layers: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Hoist the children of JSON group layers, depth first, in order."""
    flat = []
    for layer in layers:
        if isinstance(layer, dict) and layer.get('type') == 'group':
            flat.extend(flatten_json_layers(layer.get('layers') or []))
        else:
            flat.append(layer)
    return flat


def _load_json(document: JsonDocument) -> Dict[str, Any]:
    if isinstance(document, dict):
        return dict(document)
    try:
        data = json.loads(document)
    except ValueError as e:
        raise SchemaValidation('<document>', f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SchemaValidation('<document>', 'Expected a JSON object')
    return data


def _load_xml(document: Document, root_tag: str) -> ET.Element:
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise SchemaValidation('<document>', f"Invalid XML: {e}") from e
    if root.tag != root_tag:
        raise SchemaValidation(
            '<document>', f"Expected <{root_tag}> root element, found <{root.tag}>"
        )
    return root


def _parse_points(text: Optional[str]) -> List[Dict[str, float]]:
    """'0,0 32,0 32,32' -> [{'x': 0, 'y': 0}, ...]"""
    points = []
    for pair in (text or '').split():
        x, y = pair.split(',')
        points.append({'x': coerce_number(x), 'y': coerce_number(y)})
    return points


# =============================================================================
# PARSER
# =============================================================================

class TiledParser:
    """
    Turns Tiled documents into the canonical pydantic tree.

    Every public entry point takes strict=True by default; strict=False
    fills in Tiled's defaults for missing fields instead of failing.
    """

    # -------------------------------------------------------------------------
    # XML building blocks
    # -------------------------------------------------------------------------

    def parse_attributes(self, elem: ET.Element, target: Dict[str, Any]) -> Dict[str, Any]:
        """Copy elem's attributes into target, typed by attribute name."""
        for name, value in elem.attrib.items():
            if name in NUMBER_ATTRIBUTES:
                try:
                    target[name] = coerce_number(value)
                except ValueError:
                    target[name] = value
            elif name in BOOLEAN_ATTRIBUTES:
                target[name] = coerce_bool(value)
            else:
                target[name] = value
        return target

    def parse_properties(self, props_elem: Optional[ET.Element]) -> List[Dict[str, Any]]:
        """
        Parse a <properties> element.

        XML format:
            <property name="solid" type="bool" value="true"/>
            <property name="notes">multi
            line text</property>
            <property name="stats" type="class" propertytype="Stats">
                <properties>...</properties>
            </property>

        Values stay strings here; the schema coerces them by type.
        """
        properties = []
        if props_elem is None:
            return properties

        for prop in props_elem.findall('property'):
            prop_type = prop.get('type', 'string')
            if prop_type == 'class':
                nested = self.parse_properties(prop.find('properties'))
                value: Any = {p['name']: p['value'] for p in nested}
            else:
                value = prop.get('value')
                if value is None:
                    value = prop.text or ''

            entry = {'name': prop.get('name'), 'type': prop_type, 'value': value}
            if prop.get('propertytype'):
                entry['propertytype'] = prop.get('propertytype')
            properties.append(entry)
        return properties

    def _properties_into(self, elem: ET.Element, target: Dict[str, Any]):
        props_elem = elem.find('properties')
        if props_elem is not None:
            target['properties'] = self.parse_properties(props_elem)

    def parse_object(self, elem: ET.Element) -> Dict[str, Any]:
        """
        Parse an <object>.

        Template instances only carry overrides, so the usual defaults
        (name, visible, rotation, size) are only filled for plain objects.
        """
        obj: Dict[str, Any] = {'type': '', 'x': 0, 'y': 0}
        if not elem.get('template'):
            obj.update({
                'visible': True,
                'name': '',
                'rotation': 0,
                'width': 0,
                'height': 0,
            })
        self.parse_attributes(elem, obj)
        self._properties_into(elem, obj)

        text_elem = elem.find('text')
        if text_elem is not None:
            text: Dict[str, Any] = {'text': text_elem.text or ''}
            for name, value in text_elem.attrib.items():
                if name in TEXT_NUMBER_ATTRIBUTES:
                    text[name] = coerce_number(value)
                elif name in TEXT_BOOLEAN_ATTRIBUTES:
                    text[name] = coerce_bool(value)
                else:
                    text[name] = value
            obj['text'] = text

        if elem.find('point') is not None:
            obj['point'] = True
        if elem.find('ellipse') is not None:
            obj['ellipse'] = True

        polygon = elem.find('polygon')
        if polygon is not None:
            obj['polygon'] = _parse_points(polygon.get('points'))

        polyline = elem.find('polyline')
        if polyline is not None:
            obj['polyline'] = _parse_points(polyline.get('points'))

        return obj

    def _parse_image(self, image_elem: ET.Element, target: Dict[str, Any]):
        target['image'] = image_elem.get('source')
        if image_elem.get('width') is not None:
            target['imagewidth'] = coerce_number(image_elem.get('width'))
        if image_elem.get('height') is not None:
            target['imageheight'] = coerce_number(image_elem.get('height'))
        if image_elem.get('trans'):
            target['transparentcolor'] = '#' + image_elem.get('trans').lstrip('#')

    def parse_tile(self, elem: ET.Element) -> Dict[str, Any]:
        """Parse a <tile> inside a tileset."""
        tile: Dict[str, Any] = {}
        self.parse_attributes(elem, tile)

        for child in elem:
            if child.tag == 'properties':
                tile['properties'] = self.parse_properties(child)

            elif child.tag == 'image':
                self._parse_image(child, tile)
                tile.pop('transparentcolor', None)

            elif child.tag == 'objectgroup':
                group: Dict[str, Any] = {
                    'type': 'objectgroup',
                    'name': '',
                    'visible': True,
                    'x': 0,
                    'y': 0,
                    'opacity': 1,
                    'objects': [],
                }
                self.parse_attributes(child, group)
                self._properties_into(child, group)
                group['objects'] = [
                    self.parse_object(o) for o in child.findall('object')
                ]
                tile['objectgroup'] = group

            elif child.tag == 'animation':
                tile['animation'] = [
                    self.parse_attributes(frame, {})
                    for frame in child.findall('frame')
                ]

        return tile

    def parse_tileset(self, elem: ET.Element) -> Dict[str, Any]:
        """
        Parse a <tileset>, embedded or external.

        External references (<tileset firstgid="1" source="a.tsx"/>) are
        returned as {firstgid, source}; the loader fetches the rest.
        """
        tileset: Dict[str, Any] = {'spacing': 0, 'margin': 0}
        self.parse_attributes(elem, tileset)

        if tileset.get('source'):
            return {'firstgid': tileset.get('firstgid'), 'source': tileset['source']}

        tiles = []
        for child in elem:
            if child.tag == 'properties':
                tileset['properties'] = self.parse_properties(child)
            elif child.tag == 'tileoffset':
                tileset['tileoffset'] = self.parse_attributes(child, {})
            elif child.tag == 'grid':
                tileset['grid'] = self.parse_attributes(child, {})
            elif child.tag == 'image':
                self._parse_image(child, tileset)
            elif child.tag == 'tile':
                tiles.append(self.parse_tile(child))

        if tiles:
            tileset['tiles'] = tiles
        return tileset

    def parse_tile_layer(self, elem: ET.Element, infinite: bool) -> Dict[str, Any]:
        """
        Parse a <layer>.

        Finite layers keep their data as it was written: a list for csv and
        legacy <tile> data, the stripped base64 text otherwise. Infinite
        layers get a chunk list plus the bounding box of all chunks.
        """
        layer: Dict[str, Any] = {
            'type': 'tilelayer',
            'x': 0,
            'y': 0,
            'opacity': 1,
            'visible': True,
        }
        self.parse_attributes(elem, layer)

        for child in elem:
            if child.tag == 'properties':
                layer['properties'] = self.parse_properties(child)

            elif child.tag == 'data':
                encoding = child.get('encoding')
                compression = child.get('compression')
                if encoding:
                    layer['encoding'] = encoding
                if compression:
                    layer['compression'] = compression

                if infinite:
                    chunks = []
                    for chunk_elem in child.findall('chunk'):
                        chunk = self.parse_attributes(chunk_elem, {})
                        chunk['data'] = self._data_payload(chunk_elem, encoding)
                        chunks.append(chunk)

                    bounds = chunk_bounds(_Rect(c) for c in chunks)
                    layer['chunks'] = chunks
                    layer['startx'] = bounds.startx
                    layer['starty'] = bounds.starty
                    layer['width'] = bounds.width
                    layer['height'] = bounds.height
                else:
                    layer['data'] = self._data_payload(child, encoding)

        return layer

    def _data_payload(self, elem: ET.Element, encoding: Optional[str]):
        if encoding == 'csv':
            return decode_csv(elem.text or '')
        if encoding == 'base64':
            return ''.join((elem.text or '').split())
        return decode_xml_tiles(elem)

    def parse_object_group(self, elem: ET.Element) -> Dict[str, Any]:
        group: Dict[str, Any] = {
            'type': 'objectgroup',
            'draworder': 'topdown',
            'visible': True,
            'x': 0,
            'y': 0,
            'opacity': 1,
        }
        self.parse_attributes(elem, group)
        self._properties_into(elem, group)
        group['objects'] = [self.parse_object(o) for o in elem.findall('object')]
        return group

    def parse_image_layer(self, elem: ET.Element) -> Dict[str, Any]:
        layer: Dict[str, Any] = {
            'type': 'imagelayer',
            'visible': True,
            'x': 0,
            'y': 0,
            'opacity': 1,
        }
        self.parse_attributes(elem, layer)
        self._properties_into(elem, layer)

        image = elem.find('image')
        if image is not None:
            layer['image'] = image.get('source')
            if image.get('trans'):
                layer['transparentcolor'] = '#' + image.get('trans').lstrip('#')
        return layer

    def _collect_layers(self, elem: ET.Element, tiled_map: Dict[str, Any]):
        """Walk map children in order, flattening <group> recursively."""
        for child in elem:
            if child.tag == 'group':
                self._collect_layers(child, tiled_map)
            elif child.tag == 'layer':
                tiled_map['layers'].append(
                    self.parse_tile_layer(child, tiled_map.get('infinite', False))
                )
            elif child.tag == 'objectgroup':
                tiled_map['layers'].append(self.parse_object_group(child))
            elif child.tag == 'imagelayer':
                tiled_map['layers'].append(self.parse_image_layer(child))

    # -------------------------------------------------------------------------
    # XML entry points
    # -------------------------------------------------------------------------

    def parse(self, tmx: Document, strict: bool = True,
              source: str = '<map>') -> TiledMap:
        """
        Parse TMX text into a TiledMap.

        Parameters:
        -----------
        tmx : str or bytes
            Contents of a .tmx file
        strict : bool
            Enforce the fields Tiled always writes
        source : str
            Name used in warnings (usually the file path)
        """
        root = _load_xml(tmx, 'map')

        tiled_map: Dict[str, Any] = {
            'type': 'map',
            'compressionlevel': -1,
            'layers': [],
            'tilesets': [],
        }
        self.parse_attributes(root, tiled_map)
        self._properties_into(root, tiled_map)
        tiled_map['tilesets'] = [self.parse_tileset(t) for t in root.findall('tileset')]
        self._collect_layers(root, tiled_map)

        result = validate(TiledMap, tiled_map, strict)
        check_version(result.tiledversion, source)
        return result

    def parse_external_tileset(self, tsx: Document, strict: bool = True,
                               source: str = '<tileset>'):
        """Parse a standalone .tsx document."""
        root = _load_xml(tsx, 'tileset')
        tileset = self.parse_tileset(root)
        tileset['type'] = 'tileset'
        tileset.pop('firstgid', None)

        result = validate(_tileset_adapter, tileset, strict)
        check_version(result.tiledversion, source)
        return result

    def parse_external_template(self, tx: Document, strict: bool = True,
                                source: str = '<template>') -> TiledTemplate:
        """Parse a standalone .tx document."""
        root = _load_xml(tx, 'template')
        template: Dict[str, Any] = {'type': 'template'}
        for key in ('version', 'tiledversion'):
            if root.get(key) is not None:
                template[key] = root.get(key)

        object_elem = root.find('object')
        if object_elem is not None:
            template['object'] = self.parse_object(object_elem)

        tileset_elem = root.find('tileset')
        if tileset_elem is not None:
            template['tileset'] = self.parse_tileset(tileset_elem)

        result = validate(TiledTemplate, template, strict)
        check_version(result.tiledversion, source)
        return result

    # -------------------------------------------------------------------------
    # JSON entry points
    # -------------------------------------------------------------------------

    def parse_json(self, tmj: JsonDocument, strict: bool = True,
                   source: str = '<map>') -> TiledMap:
        """Parse TMJ text (or an already decoded dict) into a TiledMap."""
        data = _load_json(tmj)
        data['layers'] = flatten_json_layers(data.get('layers') or [])

        result = validate(TiledMap, data, strict)
        check_version(result.tiledversion, source)
        return result

    def parse_external_tileset_json(self, tsj: JsonDocument, strict: bool = True,
                                    source: str = '<tileset>'):
        """Parse a standalone .tsj document."""
        data = _load_json(tsj)
        data.pop('firstgid', None)

        result = validate(_tileset_adapter, data, strict)
        check_version(result.tiledversion, source)
        return result

    def parse_external_template_json(self, tj: JsonDocument, strict: bool = True,
                                     source: str = '<template>') -> TiledTemplate:
        """Parse a standalone .tj document."""
        result = validate(TiledTemplate, _load_json(tj), strict)
        check_version(result.tiledversion, source)
        return result

    # -------------------------------------------------------------------------
    # Smaller pieces, handy for tests and tools
    # -------------------------------------------------------------------------

    def parse_object_xml(self, xml: Document, strict: bool = True) -> TiledObject:
        return validate(TiledObject, self.parse_object(_load_xml(xml, 'object')), strict)

    def parse_tile_xml(self, xml: Document, strict: bool = True) -> TiledTile:
        return validate(TiledTile, self.parse_tile(_load_xml(xml, 'tile')), strict)


class _Rect:
    """Attribute view over a chunk dict, for chunk_bounds()."""

    def __init__(self, chunk: Dict[str, Any]):
        self.x = chunk.get('x', 0)
        self.y = chunk.get('y', 0)
        self.width = chunk.get('width', 0)
        self.height = chunk.get('height', 0)
