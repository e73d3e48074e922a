"""File-system tile cache.

Tiles live under ``<cache_root>/<relative_path>`` as written by the map
source, e.g. ``tile.openstreetmap.org/12/2200/1343.png``. Downloads go to a
temporary file that is renamed into place once complete, so a tile file on
disk is always whole.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

from PIL import Image

from shared.constants import TILE_CACHE_MAX_AGE_SECONDS
from tiles.image import TileImage

if TYPE_CHECKING:
    from concurrent.futures import Future

    from yarl import URL

    from tiles.image import ImageObserver
    from tiles.loader import TileLoader

logger = logging.getLogger(__name__)


class DiskTileStore:
    """Reads tiles from and streams tiles into a directory tree."""

    def __init__(
        self,
        loader: TileLoader | None = None,
        *,
        max_age_seconds: float = TILE_CACHE_MAX_AGE_SECONDS,
    ) -> None:
        """Initialize disk tile store.

        Args:
            loader: Loader used for downloads; without one save() always fails.
            max_age_seconds: Age after which tiles are refreshed when online.
        """
        self.loader = loader
        self.max_age_seconds = max_age_seconds
        self._downloading: dict[Path, Future | None] = {}
        self._lock = threading.Lock()

    def get(
        self,
        cache_root: str | Path,
        relative_path: str,
        online_mode: bool,
    ) -> TileImage | None:
        """Read and decode a cached tile.

        Returns:
            Complete tile image, or None if the file is missing, empty,
            undecodable, or (when online) older than the age limit.
        """
        tile_file = Path(cache_root) / relative_path
        try:
            stat = tile_file.stat()
        except OSError:
            return None
        if not tile_file.is_file() or stat.st_size == 0:
            return None
        if online_mode and time.time() - stat.st_mtime > self.max_age_seconds:
            logger.debug('Cached tile %s is too old, refreshing', tile_file)
            return None
        try:
            with Image.open(tile_file) as img:
                img.load()
        except OSError as e:
            logger.warning('Cannot decode cached tile %s: %s', tile_file, e)
            return None
        return TileImage.from_image(img)

    def save(
        self,
        url: str | URL,
        cache_root: str | Path,
        relative_path: str,
        observer: ImageObserver | None,
    ) -> bool:
        """Start streaming ``url`` into the cache.

        Returns:
            True if the tile is being downloaded (now or by an earlier call),
            False if the cache cannot take it and the caller should load the
            image some other way.
        """
        if self.loader is None or not self.loader.is_running():
            return False
        base = Path(cache_root)
        if not base.is_dir() or not os.access(base, os.W_OK):
            logger.debug('Disk cache %s is not a writable directory', base)
            return False
        tile_file = base / relative_path
        with self._lock:
            if tile_file in self._downloading:
                return True
        try:
            tile_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning('Cannot create cache directory %s: %s', tile_file.parent, e)
            return False
        if not os.access(tile_file.parent, os.W_OK) or (
            tile_file.exists() and not os.access(tile_file, os.W_OK)
        ):
            return False
        with self._lock:
            if tile_file in self._downloading:
                return True
            self._downloading[tile_file] = None
        try:
            future = self.loader.download_file(url, tile_file, observer)
        except RuntimeError:
            self._finish(tile_file)
            return False
        with self._lock:
            if tile_file in self._downloading:
                self._downloading[tile_file] = future
        future.add_done_callback(lambda _f: self._finish(tile_file))
        return True

    def _finish(self, tile_file: Path) -> None:
        with self._lock:
            self._downloading.pop(tile_file, None)

    def is_downloading(self, tile_file: str | Path) -> bool:
        with self._lock:
            return Path(tile_file) in self._downloading

    def pending_futures(self) -> list[Future]:
        """Futures of the downloads still in progress."""
        with self._lock:
            return [f for f in self._downloading.values() if f is not None]
