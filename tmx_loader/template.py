"""
Loaded object templates (.tx / .tj).
"""

from typing import Optional

from .errors import NoTilesetForGid
from .objects import MapObject
from .resolver import GidResolver
from .schema import TiledTemplate
from .tileset import Sprite, Tileset


class Template:
    """
    One template document with its object in friendly form.

    A template's inserted tile uses GIDs local to the template: they
    resolve against the template's own tileset, never the map's.

    Parameters:
    -----------
    path : str
        Resolved path of the template file
    document : TiledTemplate
        The validated document
    tileset : Tileset, optional
        Built from the template's tileset reference, for tile templates
    map_orientation : str
        Orientation of the map the template is placed in
    """

    def __init__(self, path: str, document: TiledTemplate,
                 tileset: Optional[Tileset] = None,
                 map_orientation: str = 'orthogonal'):
        self.path = path
        self.document = document
        self.tileset = tileset
        self.object: MapObject = MapObject.from_document(document.object)
        self.object.template = self
        self.resolver = GidResolver([tileset] if tileset else [], map_orientation)

    @property
    def gid(self) -> Optional[int]:
        return self.object.gid

    def sprite(self, gid: Optional[int] = None) -> Optional[Sprite]:
        """
        Sprite of a tile template, None for shape templates. gid defaults
        to the template object's own (an instance may override it).
        """
        gid = gid if gid is not None else self.object.gid
        if not gid:
            return None
        if self.tileset is None:
            raise NoTilesetForGid(gid, gid)
        return self.resolver.sprite_for_gid(gid)

    def __repr__(self):
        return f"Template({self.path!r}, kind={self.object.kind!r})"
