"""Interfaces the tile manager needs from its collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from concurrent.futures import Future
    from pathlib import Path

    from yarl import URL

    from tiles.image import ImageObserver, TileImage
    from tiles.loader import TileResult


class TileSource(Protocol):
    def num_layers(self) -> int: ...

    def max_zoom_level(self) -> int: ...

    def tile_url(self, layer: int, zoom: int, x: int, y: int) -> str: ...

    def tile_relative_path(self, layer: int, zoom: int, x: int, y: int) -> str: ...


class TileStore(Protocol):
    def get(
        self,
        cache_root: str | Path,
        relative_path: str,
        online_mode: bool,
    ) -> TileImage | None: ...

    def save(
        self,
        url: str | URL,
        cache_root: str | Path,
        relative_path: str,
        observer: ImageObserver | None,
    ) -> bool: ...

    def pending_futures(self) -> list[Future]: ...


class ImageLoader(Protocol):
    def is_running(self) -> bool: ...

    def load_image(
        self,
        url: str | URL,
        tile: TileImage,
        observer: ImageObserver,
    ) -> Future[TileResult]: ...


class TileNotifier(Protocol):
    """Receives the "tiles updated" signal; called from the loader thread."""

    def tiles_updated(self, loaded: bool) -> None: ...
