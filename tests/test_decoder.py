"""Tile data decoding: base64, compression, csv and chunk placement."""

import base64
import gzip
import struct
import zlib

import numpy as np
import pytest
import zstandard

from tmx_loader.decoder import (
    ChunkBounds,
    bytes_to_gids,
    chunk_bounds,
    decode,
    decode_base64,
    decode_csv,
    normalize_compression,
    place_chunks,
)
from tmx_loader.errors import MalformedEncoding, UnsupportedCompression

# 4x4 layer, last cell is gid 2 flipped horizontally
EXPECTED = [1, 2, 3, 4, 49, 50, 0, 0, 0, 0, 0, 0, 6, 0, 0, 2147483650]
ZLIB_FIXTURE = "eJxjZGBgYAJiZiBmAWJDIDZiwA3YkNhAfQ0AFSAA9g=="
GZIP_FIXTURE = "H4sIAAAAAAAA/2NkYGBgAmJmIGYBYkMgNmLADdiQ2EB9DQAF+RevQAAAAA=="
PLAIN_FIXTURE = "AQAAAAIAAAADAAAABAAAADEAAAAyAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAABgAAAAAAAAAAAAAAAgAAgA=="
CSV_FIXTURE = """
1,2,3,4,
49,50,0,0,
0,0,0,0,
6,0,0,2147483650
"""


def raw_bytes(gids):
    return struct.pack("<%dI" % len(gids), *gids)


def test_decode_zlib_fixture():
    gids = decode(ZLIB_FIXTURE, "zlib")
    assert len(gids) == 16
    assert gids == EXPECTED


def test_decode_gzip_fixture():
    assert decode(GZIP_FIXTURE, "gzip") == EXPECTED


def test_decode_uncompressed_fixture():
    assert decode(PLAIN_FIXTURE) == EXPECTED
    assert decode(PLAIN_FIXTURE, "") == EXPECTED


def test_csv_matches_base64():
    assert decode_csv(CSV_FIXTURE) == decode(ZLIB_FIXTURE, "zlib")


def test_zstd_round_trip():
    payload = base64.b64encode(zstandard.ZstdCompressor().compress(raw_bytes(EXPECTED))).decode()
    assert decode(payload, "zstd") == EXPECTED
    assert decode(payload, "zstandard") == EXPECTED


def test_plain_list_is_returned_unchanged():
    assert decode([1, 0, 2147483649]) == [1, 0, 2147483649]


def test_whitespace_and_urlsafe_alphabet():
    data = raw_bytes([0xFBFFFFFF, 0xFFFFFFFF])
    standard = base64.b64encode(data).decode()
    urlsafe = base64.urlsafe_b64encode(data).decode()
    assert "-" in urlsafe or "_" in urlsafe
    assert decode("\n   " + standard + "\n  ") == [0xFBFFFFFF, 0xFFFFFFFF]
    assert decode(urlsafe) == [0xFBFFFFFF, 0xFFFFFFFF]


def test_unknown_compression():
    with pytest.raises(UnsupportedCompression):
        decode(ZLIB_FIXTURE, "bogus")
    with pytest.raises(UnsupportedCompression):
        normalize_compression("lz4")


def test_base64_length_must_be_multiple_of_four():
    with pytest.raises(MalformedEncoding):
        decode_base64("AQAAAA=")


def test_corrupt_compressed_data():
    broken = base64.b64encode(b"not zlib data at all").decode()
    with pytest.raises(MalformedEncoding):
        decode(broken, "zlib")


def test_byte_count_must_be_multiple_of_four():
    with pytest.raises(MalformedEncoding):
        bytes_to_gids(b"\x01\x00\x00")


def test_gzip_and_zlib_agree():
    data = raw_bytes(list(range(64)))
    via_zlib = base64.b64encode(zlib.compress(data)).decode()
    via_gzip = base64.b64encode(gzip.compress(data)).decode()
    assert decode(via_zlib, "zlib") == decode(via_gzip, "gzip") == list(range(64))


# =============================================================================
# Chunks
# =============================================================================

class FakeChunk:
    def __init__(self, x, y, width, height, data):
        self.x = x
        self.y = y
        self.width = width
        self.height = height
        self.data = data


def test_chunks_are_placed_side_by_side():
    first = [0] * 256
    first[0] = 1
    second = [0] * 256
    second[0] = 2
    grid = place_chunks([FakeChunk(0, 0, 16, 16, first), FakeChunk(16, 0, 16, 16, second)])

    assert grid.shape == (16, 32)
    assert grid.dtype == np.uint32
    assert grid[0, 0] == 1
    assert grid[0, 16] == 2
    assert int(grid[:, 1:16].sum()) == 0


def test_chunk_bounds_with_negative_origin():
    chunks = [FakeChunk(-16, -16, 16, 16, [0] * 256), FakeChunk(16, 0, 16, 16, [0] * 256)]
    assert chunk_bounds(chunks) == ChunkBounds(-16, -16, 48, 32)
    assert chunk_bounds([]) == ChunkBounds(0, 0, 0, 0)


def test_base64_chunks_use_layer_compression():
    data = [7] * 4
    payload = base64.b64encode(zlib.compress(raw_bytes(data))).decode()
    grid = place_chunks([FakeChunk(2, 3, 2, 2, payload)], "zlib")
    assert grid.tolist() == [[7, 7], [7, 7]]


def test_chunk_with_wrong_size():
    with pytest.raises(MalformedEncoding):
        place_chunks([FakeChunk(0, 0, 2, 2, [1, 2, 3])])
