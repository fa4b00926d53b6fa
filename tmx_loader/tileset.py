"""
Friendly tilesets: sprites, colliders and animations per GID.

=============================================================================
SPRITESHEET GRID
=============================================================================

Single image tilesets cut every tile out of one sheet:

    col = local_id % columns
    row = local_id // columns
    x   = margin + col * (tilewidth + spacing)
    y   = margin + row * (tileheight + spacing)

Image collection tilesets give every tile its own image instead.

=============================================================================
FLIPPED GIDS
=============================================================================

Sprites are shared per local id and never mutated. A GID with flip flags
gets a clone carrying the rotation/scale Tiled draws it with, and collision
shapes are run through the flip chain (diagonal, horizontal, vertical) in
tileset-local pixel space.

=============================================================================
"""

import copy
import weakref
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from PIL import Image

from .errors import TileNotFound
from .gid import (
    FlipFlags, apply_matrix, canonical_gid, flip_matrix, has_flip,
    isometric_points_to_world, isometric_to_world, sprite_flip,
    transform_points,
)
from .log import get_logger
from .objects import MapObject
from .properties import PropertyBag, get_prop, map_props
from .schema import TiledTile, TilesetCollection, TilesetSingleImage

logger = get_logger('tileset')


ALIGNMENT_ANCHORS: Dict[str, Tuple[float, float]] = {
    'topleft': (0.0, 0.0),
    'top': (0.5, 0.0),
    'topright': (1.0, 0.0),
    'left': (0.0, 0.5),
    'center': (0.5, 0.5),
    'right': (1.0, 0.5),
    'bottomleft': (0.0, 1.0),
    'bottom': (0.5, 1.0),
    'bottomright': (1.0, 1.0),
}

ANIMATION_STRATEGIES = ('loop', 'end', 'freeze', 'pingpong')


# =============================================================================
# SPRITES AND ANIMATIONS
# =============================================================================

@dataclass
class Sprite:
    """
    A region of an image plus how to draw it.

    image is whatever handle the image loader produced (None in headless
    mode). rotation is in radians; scale carries the mirroring of flip
    flags, e.g. (-1, 1) for a horizontal flip.
    """
    image: object
    x: int
    y: int
    width: int
    height: int
    rotation: float = 0.0
    scale: Tuple[float, float] = (1.0, 1.0)
    flip: FlipFlags = field(default_factory=FlipFlags)
    dest_size: Optional[Tuple[float, float]] = None

    def clone(self) -> 'Sprite':
        return copy.copy(self)

    @property
    def is_transformed(self) -> bool:
        return self.rotation != 0.0 or self.scale != (1.0, 1.0)

    def to_pil(self) -> Image.Image:
        """
        Cut this sprite out of a loaded Pillow-backed image and apply its
        flips. Needs an image handle with a crop() method (ImageSource).
        """
        if self.image is None or not hasattr(self.image, 'crop'):
            raise RuntimeError('Sprite has no loaded image to crop from')
        cell = self.image.crop(self.x, self.y, self.width, self.height)
        if self.flip.diagonal:
            cell = cell.transpose(Image.Transpose.TRANSPOSE)
        if self.flip.horizontal:
            cell = cell.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        if self.flip.vertical:
            cell = cell.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
        return cell


@dataclass
class Frame:
    gid: int
    sprite: Sprite
    duration: int


@dataclass
class Animation:
    frames: List[Frame]
    strategy: str = 'loop'

    @property
    def duration(self) -> int:
        return sum(frame.duration for frame in self.frames)


# =============================================================================
# COLLIDERS
# =============================================================================

@dataclass
class PolygonCollider:
    """Closed polygon; box=True when it came from a rectangle."""
    points: np.ndarray
    box: bool = False

    def translated(self, dx: float, dy: float) -> 'PolygonCollider':
        return PolygonCollider(self.points + np.array([dx, dy]), self.box)

    def scaled(self, sx: float, sy: float) -> 'PolygonCollider':
        return PolygonCollider(self.points * np.array([sx, sy]), self.box)

    def projected(self, tile_width: float, tile_height: float) -> 'PolygonCollider':
        return PolygonCollider(
            isometric_points_to_world(self.points, tile_width, tile_height), self.box
        )


@dataclass
class CircleCollider:
    """Circle; Tiled ellipses become circles using the smaller dimension."""
    radius: float
    center: Tuple[float, float]

    def translated(self, dx: float, dy: float) -> 'CircleCollider':
        return CircleCollider(self.radius, (self.center[0] + dx, self.center[1] + dy))

    def scaled(self, sx: float, sy: float) -> 'CircleCollider':
        return CircleCollider(
            self.radius * min(abs(sx), abs(sy)),
            (self.center[0] * sx, self.center[1] * sy),
        )

    def projected(self, tile_width: float, tile_height: float) -> 'CircleCollider':
        return CircleCollider(
            self.radius, isometric_to_world(*self.center, tile_width, tile_height)
        )


Collider = Union[PolygonCollider, CircleCollider]


# =============================================================================
# TILE
# =============================================================================

class Tile:
    """
    A tile with extra data (class, properties, collision, animation).

    Only tiles Tiled wrote a <tile> entry for exist; plain tiles have no
    Tile object. The tileset is held through a weak reference, the
    tileset owns its tiles.
    """

    def __init__(self, tiled_tile: TiledTile, tileset: 'Tileset'):
        self.id = tiled_tile.id
        self.class_ = tiled_tile.class_
        self.probability = tiled_tile.probability
        self.tiled_tile = tiled_tile
        self.properties: PropertyBag = map_props(tiled_tile.properties)
        self.animation = list(tiled_tile.animation or [])
        self.objects: List[MapObject] = []
        self._tileset = weakref.ref(tileset)

        if tiled_tile.objectgroup is not None:
            self.objects = [MapObject.from_document(o) for o in tiled_tile.objectgroup.objects]

    @property
    def tileset(self) -> Optional['Tileset']:
        return self._tileset()

    @property
    def gid(self) -> Optional[int]:
        tileset = self.tileset
        return tileset.firstgid + self.id if tileset else None

    @property
    def name(self) -> Optional[str]:
        return get_prop(self.properties, 'name')

    @property
    def animation_strategy(self) -> str:
        strategy = get_prop(self.properties, 'animationstrategy')
        if strategy is None:
            return 'loop'
        strategy = str(strategy).lower()
        if strategy not in ANIMATION_STRATEGIES:
            tileset = self.tileset
            logger.warning(
                f"Unknown animation strategy in tileset "
                f"{tileset.name if tileset else '?'} on tile {self.id}: {strategy}"
            )
            return 'loop'
        return strategy

    def __repr__(self):
        return f"Tile(id={self.id}, class_={self.class_!r})"


# =============================================================================
# TILESET
# =============================================================================

class Tileset:
    """
    A tileset placed in a map (or template) at a given firstgid.

    Parameters:
    -----------
    document : TilesetSingleImage or TilesetCollection
        The validated tileset, embedded or loaded from a .tsx/.tsj
    firstgid : int
        Assigned by the referencing map/template
    image : image handle, optional
        Spritesheet image of a single image tileset
    tile_images : dict, optional
        local id -> image handle for image collection tilesets
    source : str, optional
        Resolved path of the external file it was loaded from
    """

    def __init__(self, document: Union[TilesetSingleImage, TilesetCollection],
                 firstgid: int, image=None, tile_images=None,
                 source: Optional[str] = None):
        self.document = document
        self.kind = document.kind
        self.name = document.name
        self.class_ = document.class_
        self.firstgid = firstgid
        self.source = source
        self.tilewidth = document.tilewidth
        self.tileheight = document.tileheight
        self.columns = document.columns
        self.spacing = document.spacing
        self.margin = document.margin
        self.orientation = document.orientation
        self.object_alignment = document.objectalignment
        self.properties: PropertyBag = map_props(document.properties)
        self.image = image
        self.tile_images: Dict[int, object] = dict(tile_images or {})

        offset = document.tileoffset
        self.tile_offset: Tuple[float, float] = (offset.x, offset.y) if offset else (0.0, 0.0)

        self.tiles: List[Tile] = [Tile(t, self) for t in document.tiles]
        self._tiles_by_id: Dict[int, Tile] = {t.id: t for t in self.tiles}
        self._sprites: Dict[int, Sprite] = {}

        if document.kind == 'collection' and document.tiles:
            # collection tile ids can be sparse; the gid range covers the largest id
            self.tilecount = max(document.tilecount, max(t.id for t in document.tiles) + 1)
        else:
            self.tilecount = document.tilecount

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def local_id(self, gid: int) -> int:
        return canonical_gid(gid) - self.firstgid

    def contains_gid(self, gid: int) -> bool:
        local = self.local_id(gid)
        return 0 <= local < self.tilecount

    def get_tile_by_gid(self, gid: int) -> Optional[Tile]:
        """The Tile entry for gid, None for plain tiles."""
        return self._tiles_by_id.get(self.local_id(gid))

    def get_tile(self, local_id: int) -> Optional[Tile]:
        return self._tiles_by_id.get(local_id)

    def alignment_anchor(self, map_orientation: str = 'orthogonal') -> Tuple[float, float]:
        """
        Anchor of inserted tile objects, (0, 0) top-left to (1, 1)
        bottom-right. Unspecified alignment is bottom-left on orthogonal
        maps and bottom-center on isometric maps.
        """
        if self.object_alignment and self.object_alignment != 'unspecified':
            return ALIGNMENT_ANCHORS[self.object_alignment]
        if map_orientation == 'isometric':
            return ALIGNMENT_ANCHORS['bottom']
        return ALIGNMENT_ANCHORS['bottomleft']

    # -------------------------------------------------------------------------
    # Sprites
    # -------------------------------------------------------------------------

    def _base_sprite(self, gid: int) -> Sprite:
        local = self.local_id(gid)
        sprite = self._sprites.get(local)
        if sprite is not None:
            return sprite

        if self.kind == 'single_image':
            if not 0 <= local < self.tilecount:
                raise TileNotFound(gid, self.name, local)
            columns = self.columns or 1
            col = local % columns
            row = local // columns
            sprite = Sprite(
                image=self.image,
                x=self.margin + col * (self.tilewidth + self.spacing),
                y=self.margin + row * (self.tileheight + self.spacing),
                width=self.tilewidth,
                height=self.tileheight,
            )
        else:
            tile = self._tiles_by_id.get(local)
            if tile is None or tile.tiled_tile.image is None:
                raise TileNotFound(gid, self.name, local)
            sprite = Sprite(
                image=self.tile_images.get(local),
                x=0,
                y=0,
                width=tile.tiled_tile.imagewidth or self.tilewidth,
                height=tile.tiled_tile.imageheight or self.tileheight,
            )

        self._sprites[local] = sprite
        return sprite

    def get_sprite_for_gid(self, gid: int) -> Sprite:
        """
        Sprite for gid. Unflipped GIDs share one sprite per tile; flipped
        ones get a clone with Tiled's rotation and mirroring applied.
        """
        sprite = self._base_sprite(gid)
        if not has_flip(gid):
            return sprite

        sprite = sprite.clone()
        sprite.rotation, sprite.scale = sprite_flip(gid, sprite.scale)
        sprite.flip = FlipFlags.from_gid(gid)
        return sprite

    # -------------------------------------------------------------------------
    # Colliders
    # -------------------------------------------------------------------------

    def transform_points(self, points, gid: int) -> np.ndarray:
        """Run tile-local points through gid's flip chain."""
        return transform_points(points, gid, self.tilewidth, self.tileheight)

    def get_colliders_for_gid(self, gid: int) -> List[Collider]:
        """
        Collision shapes of the tile, in tile-local pixels, flipped like
        the tile. Polygons and rectangles become polygons; ellipses become
        circles using the smaller of width and height.
        """
        tile = self.get_tile_by_gid(gid)
        if tile is None or not tile.objects:
            return []

        matrix = flip_matrix(gid, self.tilewidth, self.tileheight)
        colliders: List[Collider] = []
        for obj in tile.objects:
            if obj.kind == 'polygon' and obj.points is not None:
                colliders.append(PolygonCollider(apply_matrix(matrix, obj.world_points)))

            elif obj.kind == 'rectangle':
                box = np.array([
                    [0.0, 0.0],
                    [obj.width, 0.0],
                    [obj.width, obj.height],
                    [0.0, obj.height],
                ]) + np.array([obj.x, obj.y])
                colliders.append(PolygonCollider(apply_matrix(matrix, box), box=True))

            elif obj.kind == 'ellipse':
                radius = min(obj.width, obj.height) / 2
                center = apply_matrix(
                    matrix, [[obj.x + obj.width / 2, obj.y + obj.height / 2]]
                )[0]
                colliders.append(CircleCollider(radius, (float(center[0]), float(center[1]))))

        return colliders

    def isometric_to_world(self, x: float, y: float) -> Tuple[float, float]:
        """Isometric projection in this tileset's own tile units."""
        return isometric_to_world(x, y, self.tilewidth, self.tileheight)

    def __repr__(self):
        return f"Tileset(name={self.name!r}, firstgid={self.firstgid}, kind={self.kind!r})"
