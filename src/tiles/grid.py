"""Toroidal in-memory tile grid.

A fixed-size ring buffer of tile images that follows the viewport centre.
Panning moves a rolling centre-cell offset instead of moving data, so the
cache is never reallocated. Tiles that leave the window are evicted simply
by having their cell reused.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import TYPE_CHECKING

from shared.constants import TILE_GRID_SIZE

if TYPE_CHECKING:
    from tiles.image import TileImage

logger = logging.getLogger(__name__)

# Epochs are unique across all grids, so a recreated grid never matches an old one
_epochs = itertools.count(1)


def wrap(value: int, size: int) -> int:
    """Map any integer into [0, size) (floored modulo)."""
    return value % size


class ToroidalTileGrid:
    """Memory tile cache for a single map layer.

    The grid holds ``size * size`` cells. The cell at ``(cell_x, cell_y)``
    holds the centre tile ``(tile_x, tile_y)``; every other tile within
    ``radius`` of the centre maps to the cell at the same offset, wrapping
    around the edges.

    All methods are thread-safe: the render path reads cells while the tile
    loader thread writes completed images into them.
    """

    def __init__(self, size: int = TILE_GRID_SIZE) -> None:
        if size < 1 or size % 2 == 0:
            msg = f'Grid size must be a positive odd number, got {size}'
            raise ValueError(msg)
        self.size = size
        self.radius = size // 2
        self._cells: list[TileImage | None] = [None] * (size * size)
        self._zoom: int | None = None
        self._tile_x = 0
        self._tile_y = 0
        self._cell_x = 0
        self._cell_y = 0
        self._lock = threading.Lock()
        self._epoch = next(_epochs)

    @property
    def zoom(self) -> int | None:
        """Zoom level of the current window, None before the first recenter."""
        return self._zoom

    @property
    def center(self) -> tuple[int, int]:
        """Tile coordinate at the logical centre of the window."""
        return self._tile_x, self._tile_y

    @property
    def center_cell(self) -> tuple[int, int]:
        """Physical cell currently holding the centre tile."""
        return self._cell_x, self._cell_y

    @property
    def epoch(self) -> int:
        """Changes whenever every cell is cleared; tags fetches issued before it."""
        return self._epoch

    def recenter(self, zoom: int, tile_x: int, tile_y: int) -> None:
        """Move the window so that (tile_x, tile_y) at ``zoom`` is the centre.

        Small moves slide the ring buffer and invalidate only the lines that
        entered the window. A zoom change, or a jump further than the radius,
        clears every cell.
        """
        with self._lock:
            dx = tile_x - self._tile_x
            dy = tile_y - self._tile_y
            shift = max(abs(dx), abs(dy))
            if shift == 0 and zoom == self._zoom:
                return
            if zoom != self._zoom or shift > self.radius:
                self._zoom = zoom
                self._tile_x = tile_x
                self._tile_y = tile_y
                self._clear()
                return
            self._cell_x = wrap(self._cell_x + dx, self.size)
            self._cell_y = wrap(self._cell_y + dy, self.size)
            self._tile_x = tile_x
            self._tile_y = tile_y
            self._invalidate_leading_edge(dx, dy)

    def _invalidate_leading_edge(self, dx: int, dy: int) -> None:
        # Cells of the lines that just entered the window still hold tiles
        # that left it on the opposite side.
        r = self.radius
        if dx > 0:
            columns = range(self._tile_x + r - dx + 1, self._tile_x + r + 1)
        else:
            columns = range(self._tile_x - r, self._tile_x - r - dx)
        for x in columns:
            for y in range(self._tile_y - r, self._tile_y + r + 1):
                self._cells[self._address(x, y)] = None
        if dy > 0:
            rows = range(self._tile_y + r - dy + 1, self._tile_y + r + 1)
        else:
            rows = range(self._tile_y - r, self._tile_y - r - dy)
        for y in rows:
            for x in range(self._tile_x - r, self._tile_x + r + 1):
                self._cells[self._address(x, y)] = None

    def _address(self, x: int, y: int) -> int:
        cx = wrap(x - self._tile_x + self._cell_x, self.size)
        cy = wrap(y - self._tile_y + self._cell_y, self.size)
        return cx + cy * self.size

    def address_of(self, x: int, y: int) -> int:
        """Linear cell index for tile (x, y). Tiles outside the window alias."""
        with self._lock:
            return self._address(x, y)

    def contains(self, zoom: int, x: int, y: int) -> bool:
        """True if (x, y) at ``zoom`` lies inside the current window."""
        with self._lock:
            return self._contains(zoom, x, y)

    def _contains(self, zoom: int, x: int, y: int) -> bool:
        return (
            self._zoom is not None
            and zoom == self._zoom
            and abs(x - self._tile_x) <= self.radius
            and abs(y - self._tile_y) <= self.radius
        )

    def get_tile(self, x: int, y: int) -> TileImage | None:
        with self._lock:
            return self._cells[self._address(x, y)]

    def set_tile(self, tile: TileImage | None, x: int, y: int) -> None:
        """Store ``tile`` in the cell for (x, y), replacing whatever was there."""
        with self._lock:
            self._cells[self._address(x, y)] = tile

    def put_if_current(
        self,
        tile: TileImage,
        zoom: int,
        x: int,
        y: int,
        epoch: int | None = None,
    ) -> bool:
        """Store a late-arriving tile only if its coordinate is still in the window.

        Args:
            epoch: Grid epoch the fetch was issued in; the tile is dropped if
                the grid has been cleared since.

        Returns:
            True if the tile was stored.
        """
        with self._lock:
            if epoch is not None and epoch != self._epoch:
                return False
            if not self._contains(zoom, x, y):
                return False
            self._cells[self._address(x, y)] = tile
            return True

    def remove_tile(self, tile: TileImage, zoom: int, x: int, y: int) -> bool:
        """Empty the cell for (x, y) if it still holds this very ``tile``."""
        with self._lock:
            if not self._contains(zoom, x, y):
                return False
            index = self._address(x, y)
            if self._cells[index] is not tile:
                return False
            self._cells[index] = None
            return True

    def clear_all(self) -> None:
        with self._lock:
            self._clear()

    def _clear(self) -> None:
        self._epoch = next(_epochs)
        for i in range(len(self._cells)):
            self._cells[i] = None

    def cached_count(self) -> int:
        """Number of occupied cells."""
        with self._lock:
            return sum(1 for cell in self._cells if cell is not None)

    def loaded_count(self) -> int:
        """Number of cells holding a fully loaded tile."""
        with self._lock:
            return sum(1 for cell in self._cells if cell is not None and cell.is_complete)
