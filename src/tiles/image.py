"""Tile image handles and the image-observer flag protocol.

A :class:`TileImage` is what the memory grid stores and what callers get back
from the tile manager. It may still be loading: its size becomes known once
the image header has been parsed, and the decoded Pillow image once every
byte has arrived.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import IntFlag
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from PIL import Image


class ImageFlags(IntFlag):
    """Progress flags reported to image observers."""

    NONE = 0
    WIDTH = 1
    HEIGHT = 2
    SOMEBITS = 8
    ALLBITS = 32
    ERROR = 64
    ABORT = 128


@dataclass(frozen=True)
class TileRequest:
    """Identity of a tile fetch: what it was issued for, and when."""

    layer: int
    zoom: int
    x: int
    y: int
    generation: int = 0
    # Epoch of the layer grid the fetch was issued into
    epoch: int | None = None


class ImageObserver(Protocol):
    def __call__(self, tile: TileImage | None, flags: ImageFlags) -> bool:
        """Receive a progress update; return False to stop loading."""
        ...


class TileImage:
    """Reference to a tile image that may still be loading."""

    def __init__(
        self,
        request: TileRequest | None = None,
        image: Image.Image | None = None,
    ) -> None:
        self.request = request
        self._image: Image.Image | None = None
        self._width = -1
        self._height = -1
        self._flags = ImageFlags.NONE
        self._lock = threading.Lock()
        if image is not None:
            self.complete(image)

    @classmethod
    def from_image(cls, image: Image.Image, request: TileRequest | None = None) -> TileImage:
        """Handle for an image that is already fully decoded."""
        return cls(request=request, image=image)

    @property
    def width(self) -> int:
        """Width in pixels, -1 while unknown."""
        return self._width

    @property
    def height(self) -> int:
        """Height in pixels, -1 while unknown."""
        return self._height

    @property
    def image(self) -> Image.Image | None:
        """Decoded image, None until loading has completed."""
        return self._image

    @property
    def flags(self) -> ImageFlags:
        return self._flags

    @property
    def is_complete(self) -> bool:
        return bool(self._flags & ImageFlags.ALLBITS)

    @property
    def has_failed(self) -> bool:
        return bool(self._flags & (ImageFlags.ERROR | ImageFlags.ABORT))

    def set_size(self, width: int, height: int) -> ImageFlags:
        """Record the size parsed from the image header."""
        with self._lock:
            self._width = width
            self._height = height
            self._flags |= ImageFlags.WIDTH | ImageFlags.HEIGHT
            return self._flags

    def mark_progress(self) -> ImageFlags:
        with self._lock:
            self._flags |= ImageFlags.SOMEBITS
            return self._flags

    def complete(self, image: Image.Image) -> ImageFlags:
        """Attach the fully decoded image."""
        with self._lock:
            self._image = image
            self._width, self._height = image.size
            self._flags |= (
                ImageFlags.WIDTH | ImageFlags.HEIGHT | ImageFlags.SOMEBITS | ImageFlags.ALLBITS
            )
            return self._flags

    def fail(self, flag: ImageFlags = ImageFlags.ERROR) -> ImageFlags:
        with self._lock:
            self._flags |= flag
            return self._flags

    def __repr__(self) -> str:
        return (
            f'TileImage(request={self.request!r}, size={self._width}x{self._height}, '
            f'flags={self._flags!r})'
        )
