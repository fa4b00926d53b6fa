"""
Tile data decoding.

=============================================================================
ENCODINGS
=============================================================================

Tile layer data reaches us in one of three shapes:

1. A plain list of integers:
   JSON "csv" layers, and XML csv layers once the parser has split the text.
   Nothing to do, the list is returned as is.

2. A base64 string, optionally compressed:
       <data encoding="base64" compression="zlib">eJxjYGBgYAAAAAUAAQ==</data>
   base64 -> bytes -> (gzip | zlib | zstd) -> little-endian uint32 per tile.

3. Legacy XML <tile gid="..."/> children (handled by decode_xml_tiles).

=============================================================================
INFINITE MAPS
=============================================================================

Infinite maps store chunks instead of one dense array. Every chunk is decoded
on its own; place_chunks() then writes each decoded chunk into a dense
(height, width) grid at the chunk's offset relative to the layer's top-left:

    chunk (0,0) 16x16   -> grid columns  0..15
    chunk (16,0) 16x16  -> grid columns 16..31

All functions here are pure, so independent layers or chunks may be decoded
concurrently.

=============================================================================
"""

import base64
import binascii
import gzip
import zlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import zstandard

from .errors import MalformedEncoding, UnsupportedCompression


SUPPORTED_COMPRESSIONS = ('gzip', 'zlib', 'zstd')

# Tiled writes "zstd"; some exporters spell it out
_COMPRESSION_ALIASES = {
    'zstandard': 'zstd',
}

# URL-safe base64 alphabet back to the standard one
_URLSAFE_TABLE = str.maketrans('-_', '+/')

Payload = Union[str, Sequence[int]]


def normalize_compression(compression: Optional[str]) -> Optional[str]:
    """Return the canonical compression tag, None for "no compression"."""
    if not compression:
        return None
    compression = compression.strip().lower()
    compression = _COMPRESSION_ALIASES.get(compression, compression)
    if compression not in SUPPORTED_COMPRESSIONS:
        raise UnsupportedCompression(compression)
    return compression


def decode_base64(text: str) -> bytes:
    """
    Decode a base64 payload to bytes.

    Whitespace (Tiled indents the text of <data>) is ignored and the
    URL-safe alphabet is accepted.
    """
    cleaned = ''.join(text.split()).translate(_URLSAFE_TABLE)
    if len(cleaned) % 4 != 0:
        raise MalformedEncoding(
            f"Base64 payload length {len(cleaned)} is not a multiple of 4"
        )
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEncoding(f"Invalid base64 payload: {e}") from e


def decompress(raw: bytes, compression: Optional[str]) -> bytes:
    """
    Inflate raw bytes according to the compression tag.

    Parameters:
    -----------
    raw : bytes
        Bytes straight out of the base64 decoder
    compression : str or None
        'gzip', 'zlib', 'zstd' or None for uncompressed data
    """
    compression = normalize_compression(compression)

    try:
        if compression is None:
            return raw
        if compression == 'zlib':
            return zlib.decompress(raw)
        if compression == 'gzip':
            return gzip.decompress(raw)
        # zstd frames written by Tiled do not always carry the content size,
        # the streaming decompressor copes with both
        dctx = zstandard.ZstdDecompressor()
        return dctx.decompressobj().decompress(raw)
    except (zlib.error, OSError, EOFError, zstandard.ZstdError) as e:
        raise MalformedEncoding(
            f"Could not decompress {compression} tile data: {e}"
        ) from e


def bytes_to_gids(raw: bytes) -> np.ndarray:
    """Group every 4 bytes (little-endian) into one uint32 tile id."""
    if len(raw) % 4 != 0:
        raise MalformedEncoding(
            f"Decoded tile data is {len(raw)} bytes, not a multiple of 4"
        )
    return np.frombuffer(raw, dtype='<u4').astype(np.uint32)


def decode(payload: Payload, compression: Optional[str] = None) -> List[int]:
    """
    Decode one layer (or chunk) payload into an ordered list of GIDs.

    Parameters:
    -----------
    payload : str or sequence of int
        A base64 string, or an already decoded list of GIDs
    compression : str or None
        Compression tag that goes with a base64 payload

    Returns:
    --------
    List[int] : GIDs in row-major order, flip bits untouched
    """
    if not isinstance(payload, str):
        # already plain numbers, "csv" in Tiled's vocabulary
        return list(payload)

    raw = decode_base64(payload)
    raw = decompress(raw, compression)
    return bytes_to_gids(raw).tolist()


def decode_csv(text: str) -> List[int]:
    """
    Split csv layer text into GIDs.

    "1,2,3,\\n4,5,6" -> [1, 2, 3, 4, 5, 6]
    """
    gids = []
    for token in text.replace('\n', ',').split(','):
        token = token.strip()
        if token:
            gids.append(int(token))
    return gids


def decode_xml_tiles(data_elem: ET.Element) -> List[int]:
    """Read the deprecated <tile gid="..."/> form of tile data."""
    return [int(tile.get('gid', 0)) for tile in data_elem.findall('tile')]


# =============================================================================
# CHUNK PLACEMENT
# =============================================================================

@dataclass
class ChunkBounds:
    """Bounding box of an infinite layer, in tiles."""
    startx: int
    starty: int
    width: int
    height: int


def chunk_bounds(chunks: Iterable) -> ChunkBounds:
    """
    Union of every chunk rectangle.

    Each chunk only needs x, y, width and height attributes.
    """
    chunks = list(chunks)
    if not chunks:
        return ChunkBounds(0, 0, 0, 0)

    min_x = min(c.x for c in chunks)
    min_y = min(c.y for c in chunks)
    max_x = max(c.x + c.width for c in chunks)
    max_y = max(c.y + c.height for c in chunks)
    return ChunkBounds(min_x, min_y, max_x - min_x, max_y - min_y)


def place_chunks(chunks: Iterable, compression: Optional[str] = None,
                 bounds: Optional[ChunkBounds] = None) -> np.ndarray:
    """
    Decode every chunk and write it into one dense grid.

    Parameters:
    -----------
    chunks : iterable
        Objects with x, y, width, height and data (payload) attributes
    compression : str or None
        Compression tag shared by all chunks of the layer
    bounds : ChunkBounds, optional
        Layer bounding box; computed from the chunks when omitted

    Returns:
    --------
    np.ndarray : uint32 array of shape (height, width), 0 where no chunk
                 covers the cell. Cell (row, col) holds the tile at logical
                 coordinate (startx + col, starty + row).
    """
    chunks = list(chunks)
    if bounds is None:
        bounds = chunk_bounds(chunks)

    grid = np.zeros((bounds.height, bounds.width), dtype=np.uint32)

    for chunk in chunks:
        gids = np.asarray(decode(chunk.data, compression), dtype=np.uint32)
        expected = chunk.width * chunk.height
        if gids.size != expected:
            raise MalformedEncoding(
                f"Chunk at ({chunk.x}, {chunk.y}) holds {gids.size} tiles, "
                f"expected {expected}"
            )

        left = chunk.x - bounds.startx
        top = chunk.y - bounds.starty
        grid[top:top + chunk.height, left:left + chunk.width] = \
            gids.reshape(chunk.height, chunk.width)

    return grid
