"""
Error taxonomy for tmx_loader.

=============================================================================
WHO RAISES WHAT
=============================================================================

    Decoder       -> MalformedEncoding, UnsupportedCompression
    Parser        -> SchemaValidation   (VersionMismatch is only a warning)
    GID engine    -> NoTilesetForGid, TileNotFound
    Loader        -> DependencyLoadFailure (one per load, aggregating every
                     broken path found in that load)
    Resource API  -> ResourceNotLoaded

Every error names the value that caused it (path, GID, compression tag) so
a broken map can be fixed without a debugger.

=============================================================================
"""

from typing import List, Sequence, Tuple


class TmxLoaderError(Exception):
    """Base class for every error raised by tmx_loader."""


class MalformedEncoding(TmxLoaderError):
    """Layer data violates the base64 / 32-bit length invariants."""


class UnsupportedCompression(TmxLoaderError):
    """Layer data uses a compression tag outside gzip, zlib and zstd."""

    def __init__(self, compression: str):
        self.compression = compression
        super().__init__(
            f"Unsupported tile data compression {compression!r}, "
            f"expected one of 'gzip', 'zlib', 'zstd'"
        )


class SchemaValidation(TmxLoaderError):
    """
    A document failed the canonical schema.

    path   : dotted location of the first violation ("layers.2.chunks.0.x")
    reason : human readable reason for that violation
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Schema violation at {path or '<root>'}: {reason}")


class NoTilesetForGid(TmxLoaderError):
    """No tileset of the current map/template owns this GID."""

    def __init__(self, gid: int, canonical: int):
        self.gid = gid
        self.canonical = canonical
        super().__init__(
            f"No tileset exists for tiled gid [{gid}] normalized [{canonical}]"
        )


class TileNotFound(TmxLoaderError):
    """The GID maps to a tileset, but that tileset has no such tile."""

    def __init__(self, gid: int, tileset: str, local_id: int):
        self.gid = gid
        self.tileset = tileset
        self.local_id = local_id
        super().__init__(
            f"Tileset [{tileset}] has no tile {local_id} for gid [{gid}]"
        )


class DependencyLoadFailure(TmxLoaderError):
    """
    One or more dependencies of a map failed to load.

    failures is the complete list of (path, reason) pairs for the load
    attempt, not just the first one encountered.
    """

    def __init__(self, failures: Sequence[Tuple[str, str]]):
        self.failures: List[Tuple[str, str]] = list(failures)
        lines = [f"  {path}: {reason}" for path, reason in self.failures]
        super().__init__(
            f"Error loading {len(self.failures)} resource(s), "
            f"is your path map correct or your Tiled map corrupted?\n"
            + "\n".join(lines)
        )

    @property
    def paths(self) -> List[str]:
        return [path for path, _ in self.failures]


class ResourceNotLoaded(TmxLoaderError):
    """A query needed data that only exists after a successful load."""


class VersionMismatch(UserWarning):
    """The document was written by an older authoring tool version."""
