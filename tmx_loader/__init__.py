"""
TMX Loader - Tiled maps (TMX/TMJ) for Python

Requisitos:
    pip install numpy pillow pydantic zstandard
"""

from .config import SUPPORTED_TILED_VERSION, LayerConfig, TiledResourceOptions
from .decoder import decode, place_chunks
from .errors import (
    TmxLoaderError, MalformedEncoding, UnsupportedCompression, SchemaValidation,
    NoTilesetForGid, TileNotFound, DependencyLoadFailure, ResourceNotLoaded,
    VersionMismatch,
)
from .gid import (
    FLIPPED_HORIZONTALLY_FLAG, FLIPPED_VERTICALLY_FLAG, FLIPPED_DIAGONALLY_FLAG,
    canonical_gid, is_flipped_horizontally, is_flipped_vertically,
    is_flipped_diagonally,
)
from .images import ImageSource
from .layers import (
    CameraDescription, FactoryProps, ImageLayer, ObjectDescription, ObjectLayer,
    TileCell, TileLayer,
)
from .objects import MapObject
from .parser import TiledParser
from .paths import PathMapRule
from .resolver import GidResolver
from .resource import LoadState, TiledResource
from .template import Template
from .tileset import Animation, CircleCollider, PolygonCollider, Sprite, Tile, Tileset

__version__ = "0.1.0"
__all__ = [
    "SUPPORTED_TILED_VERSION",
    "LayerConfig",
    "TiledResourceOptions",
    "decode",
    "place_chunks",
    "TmxLoaderError",
    "MalformedEncoding",
    "UnsupportedCompression",
    "SchemaValidation",
    "NoTilesetForGid",
    "TileNotFound",
    "DependencyLoadFailure",
    "ResourceNotLoaded",
    "VersionMismatch",
    "FLIPPED_HORIZONTALLY_FLAG",
    "FLIPPED_VERTICALLY_FLAG",
    "FLIPPED_DIAGONALLY_FLAG",
    "canonical_gid",
    "is_flipped_horizontally",
    "is_flipped_vertically",
    "is_flipped_diagonally",
    "ImageSource",
    "CameraDescription",
    "FactoryProps",
    "ImageLayer",
    "ObjectDescription",
    "ObjectLayer",
    "TileCell",
    "TileLayer",
    "MapObject",
    "TiledParser",
    "PathMapRule",
    "GidResolver",
    "LoadState",
    "TiledResource",
    "Template",
    "Animation",
    "CircleCollider",
    "PolygonCollider",
    "Sprite",
    "Tile",
    "Tileset",
]
