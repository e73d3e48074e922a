"""Tile cache manager.

Chains the three tile tiers for a map view: the in-memory toroidal grids
(one per layer), the disk cache, and the network. Network loads run on the
tile loader thread; the manager is their image observer and tells the view
to redraw when a tile has arrived.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import TYPE_CHECKING

from infrastructure.http.client import parse_tile_url
from shared.constants import TILE_GRID_RADIUS, TILE_GRID_SIZE
from tiles.disk import DiskTileStore
from tiles.grid import ToroidalTileGrid
from tiles.image import ImageFlags, TileImage, TileRequest
from tiles.sources import MapSourceLibrary

if TYPE_CHECKING:
    from concurrent.futures import Future

    from domain.models import TileCacheSettings
    from tiles.protocols import ImageLoader, TileNotifier, TileStore
    from tiles.sources import MapSource

logger = logging.getLogger(__name__)


class MapTileManager:
    """Serves map tiles from memory, disk or network, in that order.

    Usage:
        manager = MapTileManager(notifier, settings, loader=loader)
        manager.centre_map(zoom, tile_x, tile_y)
        tile = manager.get_tile(0, tile_x, tile_y)  # None until available
    """

    def __init__(
        self,
        notifier: TileNotifier,
        settings: TileCacheSettings,
        *,
        library: MapSourceLibrary | None = None,
        disk_store: TileStore | None = None,
        loader: ImageLoader | None = None,
        grid_size: int = TILE_GRID_SIZE,
    ) -> None:
        """Initialize tile manager and apply ``settings``.

        Args:
            notifier: Told when tiles arrive, from the loader thread.
            settings: Tier and source configuration.
            library: Source catalog. Defaults to built-ins plus the custom
                sources in ``settings``, rebuilt on every reset.
            disk_store: Disk tier. Defaults to a DiskTileStore on ``loader``.
            loader: Network tier; without one no network fetches happen.
            grid_size: Side of each layer's memory grid.
        """
        self._notifier = notifier
        self._fixed_library = library
        self._loader = loader
        self._disk_store: TileStore = disk_store or DiskTileStore(loader)
        self._grid_size = grid_size
        self._settings = settings
        self._library = library or MapSourceLibrary(settings.custom_map_sources)
        self._map_source: MapSource | None = None
        self._layers: list[ToroidalTileGrid] = []
        self._zoom = 0
        self._centre: tuple[int, int] | None = None
        self._generation = 0
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self.reset_config(settings)

    @property
    def settings(self) -> TileCacheSettings:
        return self._settings

    @property
    def map_source(self) -> MapSource:
        assert self._map_source is not None
        return self._map_source

    @property
    def library(self) -> MapSourceLibrary:
        return self._library

    @property
    def zoom(self) -> int:
        return self._zoom

    @property
    def generation(self) -> int:
        """Bumped by every reset_config; tags in-flight fetches."""
        return self._generation

    @property
    def num_layers(self) -> int:
        return len(self._layers)

    def layer_grid(self, layer: int) -> ToroidalTileGrid:
        if not 0 <= layer < len(self._layers):
            msg = f'Layer {layer} out of range (source has {len(self._layers)})'
            raise IndexError(msg)
        return self._layers[layer]

    def centre_map(self, zoom: int, tile_x: int, tile_y: int) -> None:
        """Recentre every layer's grid on (tile_x, tile_y) at ``zoom``."""
        self._zoom = zoom
        self._centre = (tile_x, tile_y)
        for grid in self._layers:
            grid.recenter(zoom, tile_x, tile_y)

    def is_overzoomed(self) -> bool:
        """True if the current zoom is beyond what the source provides."""
        max_zoom = self._map_source.max_zoom_level() if self._map_source is not None else 0
        return self._zoom > max_zoom

    def clear_memory_caches(self) -> None:
        """Clear the grids, recreating them if the layer count changed."""
        num_layers = self.map_source.num_layers()
        if len(self._layers) != num_layers:
            self._layers = [ToroidalTileGrid(self._grid_size) for _ in range(num_layers)]
            if self._centre is not None:
                for grid in self._layers:
                    grid.recenter(self._zoom, *self._centre)
        else:
            for grid in self._layers:
                grid.clear_all()

    def reset_config(self, settings: TileCacheSettings | None = None) -> None:
        """Apply new settings (or re-apply the current ones).

        Selects the configured map source, falling back to the first one,
        and invalidates all memory caches. Results of fetches issued before
        the reset are discarded on arrival.
        """
        if settings is not None:
            self._settings = settings
            if self._fixed_library is None:
                self._library = MapSourceLibrary(settings.custom_map_sources)
        index = self._settings.map_source_index
        source = self._library.get_source(index)
        if source is None:
            logger.warning('Map source %d not found, using source 0', index)
            source = self._library.get_source(0)
        assert source is not None
        self._map_source = source
        self._generation += 1
        self.clear_memory_caches()
        logger.info(
            'Tile manager configured: source=%r layers=%d disk_cache=%s online=%s',
            source.name,
            len(self._layers),
            self._settings.disk_cache_path,
            self._settings.online_mode,
        )

    def get_tile(self, layer: int, x: int, y: int) -> TileImage | None:
        """Tile (x, y) of ``layer`` at the current zoom, if available now.

        Returns None when the tile is not available yet; a disk download or
        network load may have been started, and the notifier fires when it
        completes. A tile whose load failed is not requested again until the
        window moves past it or the caches are cleared.

        Raises:
            IndexError: ``layer`` is not a layer of the current source.
        """
        grid = self.layer_grid(layer)
        tile = grid.get_tile(x, y)
        if tile is not None:
            return None if tile.has_failed else tile

        settings = self._settings
        source = self.map_source
        zoom = self._zoom
        cache_root = settings.disk_cache_path
        relative_path = None
        if cache_root is not None:
            relative_path = source.tile_relative_path(layer, zoom, x, y)
            tile = self._disk_store.get(cache_root, relative_path, settings.online_mode)
            if tile is not None:
                grid.set_tile(tile, x, y)
                return tile if tile.width > 0 else None

        if settings.online_mode:
            return self._fetch(grid, layer, zoom, x, y, relative_path)
        return None

    def _fetch(
        self,
        grid: ToroidalTileGrid,
        layer: int,
        zoom: int,
        x: int,
        y: int,
        relative_path: str | None,
    ) -> TileImage | None:
        try:
            url = parse_tile_url(self.map_source.tile_url(layer, zoom, x, y))
        except ValueError as e:
            logger.debug('No fetch for tile %d/%d/%d/%d: %s', layer, zoom, x, y, e)
            return None

        cache_root = self._settings.disk_cache_path
        if (
            cache_root is not None
            and relative_path is not None
            and self._disk_store.save(url, cache_root, relative_path, self.on_image_progress)
        ):
            # Lands on disk; picked up by a later disk lookup
            return None

        if self._loader is None or not self._loader.is_running():
            logger.debug('No tile loader running, cannot fetch %s', url)
            return None
        request = TileRequest(layer, zoom, x, y, self._generation, grid.epoch)
        tile = TileImage(request)
        grid.set_tile(tile, x, y)
        future = self._loader.load_image(url, tile, self.on_image_progress)
        self._track(future)
        return tile if tile.width > 0 else None

    def _track(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._untrack)

    def _untrack(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def on_image_progress(self, tile: TileImage | None, flags: ImageFlags) -> bool:
        """Image observer for disk downloads and network loads.

        A failed handle stays in its cell marked ``has_failed``, so the tile
        is not fetched again on every repaint. An aborted one is removed so
        the next request retries it.

        Returns:
            True to keep loading, False once the load is complete or failed.
        """
        if flags & ImageFlags.ABORT:
            if tile is not None and tile.request is not None:
                self._drop_aborted(tile, tile.request)
            return False
        loaded = bool(flags & ImageFlags.ALLBITS)
        error = bool(flags & ImageFlags.ERROR)
        if not (loaded or error):
            return True
        if loaded and tile is not None and tile.request is not None:
            self._store_completed(tile, tile.request)
        self._notifier.tiles_updated(loaded)
        return False

    def _grid_for(self, request: TileRequest) -> ToroidalTileGrid | None:
        if request.generation != self._generation:
            logger.debug('Discarding tile from previous configuration: %s', request)
            return None
        layers = self._layers
        if request.layer >= len(layers):
            return None
        return layers[request.layer]

    def _store_completed(self, tile: TileImage, request: TileRequest) -> None:
        grid = self._grid_for(request)
        if grid is None:
            return
        # The epoch is compared under the grid lock, so a reset racing with
        # this store cannot let an old configuration's tile in
        if not grid.put_if_current(tile, request.zoom, request.x, request.y, request.epoch):
            logger.debug('Discarding stale tile: %s', request)

    def _drop_aborted(self, tile: TileImage, request: TileRequest) -> None:
        grid = self._grid_for(request)
        if grid is not None:
            grid.remove_tile(tile, request.zoom, request.x, request.y)

    def pending_fetches(self) -> list[Future]:
        """Network loads and disk downloads still in flight."""
        with self._pending_lock:
            pending = list(self._pending)
        return pending + list(self._disk_store.pending_futures())

    def wait_for_pending(self, timeout: float | None = None) -> bool:
        """Block until in-flight fetches finish.

        Returns:
            True if nothing is left pending.
        """
        pending = self.pending_fetches()
        if pending:
            concurrent.futures.wait(pending, timeout=timeout)
        return all(f.done() for f in self.pending_fetches())

    def prefetch_window(self, radius: int = TILE_GRID_RADIUS) -> int:
        """Request every tile of every layer around the current centre.

        Returns:
            Number of tiles that were already available.
        """
        if self._centre is None:
            msg = 'centre_map() must be called before prefetching'
            raise RuntimeError(msg)
        radius = max(0, min(radius, self._grid_size // 2))
        cx, cy = self._centre
        world = 1 << self._zoom
        available = 0
        for layer in range(len(self._layers)):
            for y in range(cy - radius, cy + radius + 1):
                if not 0 <= y < world:
                    continue
                for x in range(cx - radius, cx + radius + 1):
                    tile = self.get_tile(layer, x, y)
                    if tile is not None and tile.width > 0:
                        available += 1
        return available
