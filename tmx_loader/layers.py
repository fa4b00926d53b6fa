"""
Layer builders: friendly tile, object and image layers.

=============================================================================
WHAT A BUILDER GETS AND GIVES
=============================================================================

Every builder takes one validated layer, its paint order and a
BuildContext (map document, GID resolver, loaded templates and images,
options, entity factories). Nothing is fetched here; the loader has
already resolved every dependency.

What comes out is engine-agnostic: positions, sprites, collider shapes,
animations and depth. A renderer or game framework turns these into its
own actors.

=============================================================================
DEPTH
=============================================================================

    z_index = layer property 'zindex'       when present
            = start_z_index + paint order   otherwise

=============================================================================
TILE POSITIONS
=============================================================================

Orthogonal (also used for staggered/hexagonal maps, with a warning):

    position = (x * tilewidth, y * tileheight)

Isometric, the top corner of the tile's diamond:

    position = ((x - y) * tilewidth / 2, (x + y) * tileheight / 2)

Infinite layers add their origin (startx, starty) in tiles, and every
layer adds its pixel offset.

=============================================================================
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from .config import TiledResourceOptions
from .decoder import ChunkBounds, chunk_bounds, decode, place_chunks
from .gid import canonical_gid, isometric_points_to_world, isometric_to_world
from .log import get_logger
from .objects import MapObject, TextInfo, parse_objects
from .properties import PropertyBag, by_class, by_name, by_property, get_prop, map_props
from .resolver import GidResolver
from .schema import ImageLayer as TiledImageLayer
from .schema import ObjectLayer as TiledObjectLayer
from .schema import TiledMap
from .schema import TileLayer as TiledTileLayer
from .template import Template
from .tileset import (
    Animation, CircleCollider, Collider, PolygonCollider, Sprite, Tile, Tileset,
)

logger = get_logger('layers')

COLLISION_TYPES = ('active', 'fixed', 'passive', 'preventcollision')

_UNSET = object()


@dataclass
class BuildContext:
    """Everything a layer builder may read; owned by the TiledResource."""
    tiled_map: TiledMap
    resolver: GidResolver
    options: TiledResourceOptions
    templates: Dict[str, Template] = field(default_factory=dict)
    images: Dict[str, Any] = field(default_factory=dict)
    factories: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    map_path: str = ''

    @property
    def orientation(self) -> str:
        return self.tiled_map.orientation

    @property
    def is_isometric(self) -> bool:
        return self.tiled_map.orientation == 'isometric'

    def to_world(self, x: float, y: float) -> Tuple[float, float]:
        """Map-space isometric projection, identity on other orientations."""
        if self.is_isometric:
            return isometric_to_world(x, y, self.tiled_map.tilewidth, self.tiled_map.tileheight)
        return (x, y)


@dataclass
class FactoryProps:
    """Arguments handed to an entity factory."""
    world_pos: Tuple[float, float]
    name: str
    class_: Optional[str]
    layer: 'ObjectLayer'
    object: MapObject
    properties: PropertyBag


@dataclass
class CameraDescription:
    """Initial camera taken from the first object with a truthy 'camera' property."""
    pos: Tuple[float, float]
    zoom: float = 1.0
    object: Optional[MapObject] = None


# =============================================================================
# BASE
# =============================================================================

class Layer:
    """Fields every friendly layer shares."""

    kind = 'layer'

    def __init__(self, document, order: int, context: BuildContext):
        self.document = document
        self.id = document.id
        self.name = document.name
        self.class_ = document.class_
        self.order = order
        self.visible = document.visible
        self.opacity = document.opacity
        self.offset: Tuple[float, float] = (document.offsetx or 0.0, document.offsety or 0.0)
        self.parallax: Tuple[float, float] = (
            document.parallaxx if document.parallaxx is not None else 1.0,
            document.parallaxy if document.parallaxy is not None else 1.0,
        )
        self.tint = document.tintcolor
        self.properties: PropertyBag = map_props(document.properties)

        zindex = get_prop(self.properties, 'zindex')
        if isinstance(zindex, (int, float)) and not isinstance(zindex, bool):
            self.z_index = int(zindex)
        else:
            self.z_index = context.options.start_z_index + order

    @property
    def has_parallax(self) -> bool:
        return self.parallax != (1.0, 1.0)

    def __repr__(self):
        return f"{type(self).__name__}(id={self.id}, name={self.name!r}, z={self.z_index})"


# =============================================================================
# TILE LAYER
# =============================================================================

@dataclass(eq=False)
class TileCell:
    """One non-empty cell of a tile layer."""
    x: int
    y: int
    gid: int
    tileset: Tileset
    tile: Optional[Tile]
    position: Tuple[float, float]
    sprite: Optional[Sprite] = None
    animation: Optional[Animation] = None
    colliders: List[Collider] = field(default_factory=list)
    solid: bool = False
    offset: Tuple[float, float] = (0.0, 0.0)

    @property
    def class_(self) -> Optional[str]:
        return self.tile.class_ if self.tile else None

    @property
    def properties(self) -> PropertyBag:
        return self.tile.properties if self.tile else {}


def _layer_bounds(document: TiledTileLayer) -> ChunkBounds:
    """Declared layer rectangle grown to cover every chunk."""
    bounds = chunk_bounds(document.chunks or [])
    if not document.width or not document.height:
        return bounds
    declared = ChunkBounds(document.startx or 0, document.starty or 0,
                           document.width, document.height)
    if not bounds.width or not bounds.height:
        return declared
    left = min(bounds.startx, declared.startx)
    top = min(bounds.starty, declared.starty)
    right = max(bounds.startx + bounds.width, declared.startx + declared.width)
    bottom = max(bounds.starty + bounds.height, declared.starty + declared.height)
    return ChunkBounds(left, top, right - left, bottom - top)


class TileLayer(Layer):
    """
    Decoded grid of GIDs plus a TileCell for every non-empty cell.

    Coordinates used by the lookups are logical tile coordinates: on
    infinite layers they can be negative and start at startx/starty.
    """

    kind = 'tile'

    def __init__(self, document: TiledTileLayer, order: int, context: BuildContext):
        super().__init__(document, order, context)
        self.tile_width = context.tiled_map.tilewidth
        self.tile_height = context.tiled_map.tileheight
        self.is_infinite = document.kind == 'chunked'

        self.orientation = context.orientation
        if self.orientation in ('staggered', 'hexagonal'):
            logger.warning(
                f"Layer {self.name!r}: {self.orientation} maps are laid out "
                f"with the orthogonal builder"
            )
            self.orientation = 'orthogonal'

        if self.is_infinite:
            bounds = _layer_bounds(document)
            self.gids = place_chunks(document.chunks, document.compression, bounds)
            self.start: Tuple[int, int] = (bounds.startx, bounds.starty)
        else:
            data = np.asarray(decode(document.data, document.compression), dtype=np.uint32)
            expected = document.width * document.height
            if data.size != expected:
                logger.warning(
                    f"Layer {self.name!r} holds {data.size} tiles, expected {expected}"
                )
                # missing cells are empty, extra ones are dropped
                padded = np.zeros(expected, dtype=np.uint32)
                padded[:min(expected, data.size)] = data[:expected]
                data = padded
            self.gids = data.reshape(document.height, document.width)
            self.start = (0, 0)

        self.height, self.width = self.gids.shape

        config = context.options.config_for_layer(self.name, self.id)
        if config is not None and config.is_solid is not None:
            self.solid = config.is_solid
        else:
            self.solid = bool(get_prop(self.properties, 'solid', False))
        self.use_tile_colliders = config.use_tile_colliders if config is not None else True

        self.cells: List[TileCell] = []
        self._cells_by_coord: Dict[Tuple[int, int], TileCell] = {}
        self._cells_by_gid: Dict[int, List[TileCell]] = {}
        self._build_cells(context.resolver)

    @property
    def data(self) -> List[int]:
        """Flat row-major GID list, as Tiled stores it."""
        return self.gids.ravel().tolist()

    def cell_position(self, x: int, y: int) -> Tuple[float, float]:
        ox, oy = self.offset
        if self.orientation == 'isometric':
            return (ox + (x - y) * self.tile_width / 2,
                    oy + (x + y) * self.tile_height / 2)
        return (ox + x * self.tile_width, oy + y * self.tile_height)

    def _build_cells(self, resolver: GidResolver):
        start_x, start_y = self.start
        rows, cols = np.nonzero(self.gids)
        for row, col in zip(rows.tolist(), cols.tolist()):
            gid = int(self.gids[row, col])
            x, y = start_x + col, start_y + row

            tileset = resolver.resolve_tileset(gid)
            cell = TileCell(
                x=x,
                y=y,
                gid=gid,
                tileset=tileset,
                tile=tileset.get_tile_by_gid(gid),
                position=self.cell_position(x, y),
                sprite=tileset.get_sprite_for_gid(gid),
                animation=resolver.animation_for_gid(gid),
                colliders=resolver.colliders_for_gid(gid) if self.use_tile_colliders else [],
                solid=self.solid,
                offset=tileset.tile_offset,
            )
            self.cells.append(cell)
            self._cells_by_coord[(x, y)] = cell
            self._cells_by_gid.setdefault(gid, []).append(cell)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_gid(self, x: int, y: int) -> int:
        """Raw GID at logical (x, y), 0 for empty or out of bounds."""
        col = x - self.start[0]
        row = y - self.start[1]
        if 0 <= col < self.width and 0 <= row < self.height:
            return int(self.gids[row, col])
        return 0

    def get_tile_by_coordinate(self, x: int, y: int) -> Optional[TileCell]:
        return self._cells_by_coord.get((x, y))

    def coordinate_for_point(self, world_x: float, world_y: float) -> Tuple[int, int]:
        """Logical tile coordinate under a world position."""
        wx = world_x - self.offset[0]
        wy = world_y - self.offset[1]
        if self.orientation == 'isometric':
            half_w = self.tile_width / 2
            half_h = self.tile_height / 2
            tile_x = (wx / half_w + wy / half_h) / 2
            tile_y = (wy / half_h - wx / half_w) / 2
            return (math.floor(tile_x), math.floor(tile_y))
        return (math.floor(wx / self.tile_width), math.floor(wy / self.tile_height))

    def get_tile_by_point(self, world_x: float, world_y: float) -> Optional[TileCell]:
        return self.get_tile_by_coordinate(*self.coordinate_for_point(world_x, world_y))

    def get_tiles_by_gid(self, gid: int) -> List[TileCell]:
        """Cells holding exactly this GID, flip flags included."""
        return list(self._cells_by_gid.get(gid, ()))

    def get_tiles_by_canonical_gid(self, gid: int) -> List[TileCell]:
        canonical = canonical_gid(gid)
        return [c for c in self.cells if canonical_gid(c.gid) == canonical]

    def get_tiles_by_class_name(self, class_name: str) -> List[TileCell]:
        predicate = by_class(class_name)
        return [c for c in self.cells if c.tile is not None and predicate(c)]

    def get_tiles_by_property(self, name: str, value: Any = _UNSET) -> List[TileCell]:
        predicate = by_property(name) if value is _UNSET else by_property(name, value)
        return [c for c in self.cells if c.tile is not None and predicate(c)]


# =============================================================================
# OBJECT LAYER
# =============================================================================

@dataclass(eq=False)
class ObjectDescription:
    """
    Default entity for an object no factory claimed.

    position is in world space (isometric maps already projected); anchor
    is the fraction of (width, height) the position refers to; colliders
    are relative to position.
    """
    object: MapObject
    name: str
    class_: Optional[str]
    position: Tuple[float, float]
    z_index: int
    rotation: float = 0.0
    visible: bool = True
    opacity: float = 1.0
    anchor: Tuple[float, float] = (0.0, 0.0)
    size: Tuple[float, float] = (0.0, 0.0)
    sprite: Optional[Sprite] = None
    animation: Optional[Animation] = None
    colliders: List[Collider] = field(default_factory=list)
    collision_type: Optional[str] = None
    text: Optional[TextInfo] = None
    tint: Optional[str] = None

    @property
    def properties(self) -> PropertyBag:
        return self.object.properties


class ObjectLayer(Layer):
    """
    Objects of one object group and the entities built for them.

    An object whose class has a registered factory gets whatever the
    factory returns as its entity (no entity when it returns None);
    every other object gets an ObjectDescription.
    """

    kind = 'object'

    def __init__(self, document: TiledObjectLayer, order: int, context: BuildContext):
        super().__init__(document, order, context)
        self.draw_order = document.draworder
        self.color = document.color
        self.objects: List[MapObject] = []
        self.entities: List[Any] = []
        # keyed by id() so any entity type works, hashable or not
        self._entity_by_object: Dict[int, Any] = {}
        self._object_by_entity: Dict[int, MapObject] = {}

        for obj in parse_objects(document.objects, context.templates):
            self._build(obj, context)

    def _record(self, obj: MapObject, entity: Any):
        self.entities.append(entity)
        self._entity_by_object[id(obj)] = entity
        self._object_by_entity[id(entity)] = obj

    def _build(self, obj: MapObject, context: BuildContext):
        self.objects.append(obj)
        world_pos = context.to_world(obj.x + self.offset[0], obj.y + self.offset[1])

        factory = context.factories.get(obj.class_) if obj.class_ else None
        if factory is not None:
            entity = factory(FactoryProps(
                world_pos=world_pos,
                name=obj.name,
                class_=obj.class_,
                layer=self,
                object=obj,
                properties=obj.properties,
            ))
            if entity is not None:
                self._record(obj, entity)
            return

        description = ObjectDescription(
            object=obj,
            name=obj.name,
            class_=obj.class_,
            position=world_pos,
            z_index=self.z_index,
            rotation=math.radians(obj.rotation),
            visible=self.visible and obj.visible,
            opacity=self.opacity,
            size=(obj.width, obj.height),
            collision_type=self._collision_type(obj),
            text=obj.text,
            tint=self.tint,
        )
        self._describe_shape(obj, description, context)
        self._record(obj, description)

    def _collision_type(self, obj: MapObject) -> Optional[str]:
        value = get_prop(obj.properties, 'collisiontype')
        if not isinstance(value, str):
            return None
        if value.lower() not in COLLISION_TYPES:
            logger.warning(
                f"Unknown collision type in layer {self.name}, for object id "
                f"{obj.id} and name {obj.name}: {value}"
            )
            return None
        return value.lower()

    def _describe_shape(self, obj: MapObject, description: ObjectDescription,
                        context: BuildContext):
        shape = obj.shape
        tiled_map = context.tiled_map

        if shape == 'tile' and obj.gid:
            resolver = obj.template.resolver if obj.template is not None else context.resolver
            tileset = resolver.resolve_tileset(obj.gid)
            anchor = tileset.alignment_anchor(context.orientation)

            sprite = resolver.sprite_for_gid(obj.gid).clone()
            width = obj.width or sprite.width
            height = obj.height or sprite.height
            sprite.dest_size = (width, height)
            scale = (width / sprite.width if sprite.width else 1.0,
                     height / sprite.height if sprite.height else 1.0)

            offset = (-width * anchor[0], -height * anchor[1])
            description.anchor = anchor
            description.size = (width, height)
            description.sprite = sprite
            description.animation = resolver.animation_for_gid(obj.gid)
            description.colliders = [
                c.scaled(*scale).translated(*offset)
                for c in resolver.colliders_for_gid(obj.gid)
            ]

        elif shape == 'polygon' and obj.points is not None:
            points = obj.points
            if context.is_isometric:
                points = isometric_points_to_world(points, tiled_map.tilewidth, tiled_map.tileheight)
            description.anchor = (0.0, 1.0)
            description.colliders = [PolygonCollider(points)]

        elif shape == 'rectangle':
            box = np.array([
                [0.0, 0.0],
                [obj.width, 0.0],
                [obj.width, obj.height],
                [0.0, obj.height],
            ])
            if context.is_isometric:
                box = isometric_points_to_world(box, tiled_map.tilewidth, tiled_map.tileheight)
            description.colliders = [PolygonCollider(box, box=True)]

        elif shape == 'ellipse':
            # circles only; the smaller dimension wins
            collider = CircleCollider(min(obj.width, obj.height) / 2, (obj.width / 2, obj.height / 2))
            if context.is_isometric:
                collider = collider.projected(tiled_map.tilewidth, tiled_map.tileheight)
            description.colliders = [collider]

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_objects_by_name(self, name: str) -> List[MapObject]:
        return [o for o in self.objects if by_name(name)(o)]

    def get_objects_by_class_name(self, class_name: str) -> List[MapObject]:
        return [o for o in self.objects if by_class(class_name)(o)]

    def get_objects_by_property(self, name: str, value: Any = _UNSET) -> List[MapObject]:
        predicate = by_property(name) if value is _UNSET else by_property(name, value)
        return [o for o in self.objects if predicate(o)]

    def _entities_for(self, objects: List[MapObject]) -> List[Any]:
        return [self._entity_by_object[id(o)] for o in objects if id(o) in self._entity_by_object]

    def get_entities_by_name(self, name: str) -> List[Any]:
        return self._entities_for(self.get_objects_by_name(name))

    def get_entities_by_class_name(self, class_name: str) -> List[Any]:
        return self._entities_for(self.get_objects_by_class_name(class_name))

    def get_entities_by_property(self, name: str, value: Any = _UNSET) -> List[Any]:
        return self._entities_for(self.get_objects_by_property(name, value))

    def get_entity_by_object(self, obj: MapObject) -> Optional[Any]:
        return self._entity_by_object.get(id(obj))

    def get_object_by_entity(self, entity: Any) -> Optional[MapObject]:
        return self._object_by_entity.get(id(entity))

    def get_templates(self) -> List[MapObject]:
        """Objects placed from a template."""
        return [o for o in self.objects if o.kind == 'template']


# =============================================================================
# IMAGE LAYER
# =============================================================================

class ImageLayer(Layer):
    """A single image drawn at the layer offset."""

    kind = 'image'

    def __init__(self, document: TiledImageLayer, order: int, context: BuildContext,
                 image_path: Optional[str] = None):
        super().__init__(document, order, context)
        self.image_path = image_path
        self.image = context.images.get(image_path) if image_path else None
        self.repeat_x = bool(document.repeatx)
        self.repeat_y = bool(document.repeaty)
        self.transparent_color = document.transparentcolor

    @property
    def position(self) -> Tuple[float, float]:
        return self.offset


def build_layer(document, order: int, context: BuildContext,
                image_path: Optional[str] = None) -> Layer:
    """Friendly layer for one validated layer document."""
    if document.type == 'tilelayer':
        return TileLayer(document, order, context)
    if document.type == 'objectgroup':
        return ObjectLayer(document, order, context)
    return ImageLayer(document, order, context, image_path)
