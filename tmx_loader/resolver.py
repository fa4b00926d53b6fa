"""
GID resolution against an ordered tileset list.

=============================================================================
LOOKUP
=============================================================================

A GID belongs to the tileset with the greatest firstgid <= canonical GID:

    tilesets at firstgid [1, 50, 120]

    gid 49   -> tileset @1    local id 48
    gid 50   -> tileset @50   local id 0
    gid 119  -> tileset @50   local id 69
    gid 120  -> tileset @120  local id 0
    gid 0    -> NoTilesetForGid

A map has one resolver over its tilesets; every template with an inserted
tile gets its own resolver over the template's tileset only.

=============================================================================
"""

from typing import Iterable, List, Optional, Tuple

from .errors import NoTilesetForGid
from .gid import canonical_gid, flip_bits
from .log import get_logger
from .tileset import Animation, Collider, Frame, Sprite, Tile, Tileset

logger = get_logger('resolver')


class GidResolver:
    """
    Parameters:
    -----------
    tilesets : iterable of Tileset
        Tilesets of one map (or one template), any order
    orientation : str
        Orientation of the map the GIDs are placed in
    tile_width, tile_height : float, optional
        Map tile size, used for isometric projection of map positions
    """

    def __init__(self, tilesets: Iterable[Tileset], orientation: str = 'orthogonal',
                 tile_width: Optional[float] = None,
                 tile_height: Optional[float] = None):
        # highest firstgid first
        self.tilesets: List[Tileset] = sorted(tilesets, key=lambda t: t.firstgid, reverse=True)
        self.orientation = orientation
        self.tile_width = tile_width
        self.tile_height = tile_height

    def resolve_tileset(self, gid: int) -> Tileset:
        """Tileset owning gid; NoTilesetForGid when no tileset starts at or below it."""
        canonical = canonical_gid(gid)
        if canonical > 0:
            for tileset in self.tilesets:
                if tileset.firstgid <= canonical:
                    return tileset
        raise NoTilesetForGid(gid, canonical)

    def resolve_tile(self, gid: int) -> Optional[Tile]:
        """The Tile entry for gid, None for a plain tile without extra data."""
        return self.resolve_tileset(gid).get_tile_by_gid(gid)

    def local_id(self, gid: int) -> int:
        return self.resolve_tileset(gid).local_id(gid)

    def resolve(self, gid: int) -> Tuple[Tileset, int, Optional[Tile]]:
        tileset = self.resolve_tileset(gid)
        return tileset, tileset.local_id(gid), tileset.get_tile_by_gid(gid)

    # -------------------------------------------------------------------------
    # Derived data
    # -------------------------------------------------------------------------

    def sprite_for_gid(self, gid: int) -> Sprite:
        return self.resolve_tileset(gid).get_sprite_for_gid(gid)

    def animation_for_gid(self, gid: int) -> Optional[Animation]:
        """
        Animation of the tile behind gid, None when it has none.

        Frame tile ids are local to the tileset; each is turned back into a
        GID and resolved again. gid's flip flags are ORed into every frame
        GID, so a flipped placement animates flipped instead of snapping back
        to the unflipped frames.
        """
        tileset = self.resolve_tileset(gid)
        tile = tileset.get_tile_by_gid(gid)
        if tile is None or not tile.animation:
            return None

        flags = flip_bits(gid)
        frames = []
        for frame in tile.animation:
            frame_gid = (frame.tileid + tileset.firstgid) | flags
            frames.append(Frame(
                gid=frame_gid,
                sprite=self.sprite_for_gid(frame_gid),
                duration=frame.duration,
            ))
        return Animation(frames, tile.animation_strategy)

    def colliders_for_gid(self, gid: int) -> List[Collider]:
        """
        Flipped collision shapes of gid's tile. When exactly one of the map
        and the tileset grid is isometric (orthogonal tileset in an isometric
        map, or the other way round) they are projected with the tileset's
        tile size. Staggered and hexagonal maps are laid out orthogonally.
        """
        tileset = self.resolve_tileset(gid)
        colliders = tileset.get_colliders_for_gid(gid)
        map_isometric = self.orientation == 'isometric'
        tileset_isometric = tileset.orientation == 'isometric'
        if colliders and map_isometric != tileset_isometric:
            colliders = [c.projected(tileset.tilewidth, tileset.tileheight) for c in colliders]
        return colliders

    def __len__(self) -> int:
        return len(self.tilesets)

    def __iter__(self):
        # ascending firstgid, the order the map lists them in
        return iter(reversed(self.tilesets))
