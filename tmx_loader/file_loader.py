"""
Raw document fetching.

A file loader is any async callable:

    async def loader(path: str, kind: str) -> Union[str, bytes, dict]

kind is 'xml' or 'json'. JSON loaders may return the decoded dict directly.
The host application supplies its own loader for anything that is not a
plain file on disk (HTTP, zip archives, game asset bundles).
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Union

from .log import get_logger

logger = get_logger('file_loader')

DOCUMENT_KINDS = ('xml', 'json')

FileLoader = Callable[[str, str], Awaitable[Union[str, bytes, Any]]]


async def filesystem_loader(path: str, kind: str) -> str:
    """Read a document from disk without blocking the event loop."""
    if kind not in DOCUMENT_KINDS:
        raise ValueError(f"Unknown document kind {kind!r}, expected xml or json")
    logger.debug(f"Reading {kind} document {path}")
    return await asyncio.to_thread(Path(path).read_text, encoding='utf-8')


def kind_for_path(path: str, xml_extensions) -> str:
    """'xml' when the path ends with one of xml_extensions, else 'json'."""
    lowered = path.lower()
    for ext in xml_extensions:
        if lowered.endswith(ext):
            return 'xml'
    return 'json'
