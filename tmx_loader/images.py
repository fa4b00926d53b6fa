"""
Default image handle, backed by Pillow.

The loader only needs two things from an image handle: a path, and an
async load(). Anything with that shape can be plugged in through
TiledResourceOptions.image_loader (a texture uploader, a pygame surface
loader, ...). ImageSource is the default and keeps the decoded RGBA image
around so sprites can be cut out of it.
"""

import asyncio
from typing import Optional, Tuple

from PIL import Image

from .log import get_logger

logger = get_logger('images')


class ImageSource:
    """
    A lazily loaded image file.

    Usage:
        source = ImageSource('tiles/terrain.png')
        await source.load()
        cell = source.crop(16, 0, 16, 16)
    """

    def __init__(self, path: str):
        self.path = path
        self.image: Optional[Image.Image] = None

    @property
    def loaded(self) -> bool:
        return self.image is not None

    @property
    def size(self) -> Tuple[int, int]:
        if self.image is None:
            return (0, 0)
        return self.image.size

    def _open(self) -> Image.Image:
        with Image.open(self.path) as img:
            return img.convert('RGBA')

    async def load(self) -> Image.Image:
        if self.image is None:
            # decoding is CPU/disk work, keep it off the event loop
            self.image = await asyncio.to_thread(self._open)
            logger.info(
                f"Loaded image {self.path} ({self.image.width}x{self.image.height})"
            )
        return self.image

    def crop(self, x: int, y: int, width: int, height: int) -> Image.Image:
        """Cut a region out of the loaded image."""
        if self.image is None:
            raise RuntimeError(f"Image {self.path} is not loaded yet")
        return self.image.crop((x, y, x + width, y + height))

    def __repr__(self):
        return f"ImageSource({self.path!r}, loaded={self.loaded})"
