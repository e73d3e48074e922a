"""Command-line entry point: prefetch map tiles around a location."""

from __future__ import annotations

import argparse
import logging
import math
import sys
from pathlib import Path

from domain.models import TileCacheSettings
from gui.tile_notifier import TileUpdateNotifier
from infrastructure.http.client import resolve_cache_dir
from services.settings_service import SettingsService
from shared.constants import (
    LOG_FILE_NAME,
    MERCATOR_MAX_LAT_DEG,
    TILE_GRID_RADIUS,
    WORLD_LNG_HALF_SPAN_DEG,
    WORLD_LNG_SPAN_DEG,
)
from shared.diagnostics import log_memory_usage, log_thread_status
from shared.portable import user_local_dir
from tiles.disk import DiskTileStore
from tiles.loader import TileLoader
from tiles.manager import MapTileManager
from tiles.sources import MapSourceLibrary

logger = logging.getLogger(__name__)

# Seconds to wait for outstanding fetches before giving up
DEFAULT_WAIT_TIMEOUT = 60.0


def setup_logging(verbose: bool = False) -> Path:
    """Configure application logging to the local app-data directory.

    Returns:
        Path of the log file.
    """
    log_dir = user_local_dir() / 'log'
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(log_file), encoding='utf-8'),
        ],
    )
    return log_file


def lat_lon_to_tile(lat: float, lon: float, zoom: int) -> tuple[int, int]:
    """Web Mercator tile containing (lat, lon) at ``zoom``."""
    n = 1 << zoom
    lat = max(-MERCATOR_MAX_LAT_DEG, min(MERCATOR_MAX_LAT_DEG, lat))
    x = int((lon + WORLD_LNG_HALF_SPAN_DEG) / WORLD_LNG_SPAN_DEG * n)
    lat_rad = math.radians(lat)
    y = int((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
    return x % n, max(0, min(n - 1, y))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Fill the tile cache with the map window around a location',
    )
    parser.add_argument(
        '--list-sources',
        action='store_true',
        help='Print the map sources, including custom ones from the config, and exit',
    )
    parser.add_argument('--config-dir', type=Path, help='Directory of config.toml')
    parser.add_argument('-z', '--zoom', type=int, help='Zoom level')
    where = parser.add_mutually_exclusive_group()
    where.add_argument(
        '--tile',
        nargs=2,
        type=int,
        metavar=('X', 'Y'),
        help='Centre tile coordinates',
    )
    where.add_argument(
        '--lat-lon',
        nargs=2,
        type=float,
        metavar=('LAT', 'LON'),
        help='Centre location in degrees (WGS84)',
    )
    parser.add_argument('--source', type=int, help='Map source index (see --list-sources)')
    parser.add_argument('--disk-cache', help='Disk tile cache directory')
    parser.add_argument('--offline', action='store_true', help='Do not use the network')
    parser.add_argument(
        '--radius',
        type=int,
        default=TILE_GRID_RADIUS,
        help=f'Tiles on each side of the centre (max {TILE_GRID_RADIUS})',
    )
    parser.add_argument(
        '--timeout',
        type=float,
        default=DEFAULT_WAIT_TIMEOUT,
        help='Seconds to wait for downloads',
    )
    parser.add_argument('--save', action='store_true', help='Persist the overrides')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse the command line; a location and zoom are needed unless listing sources."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.list_sources:
        if args.zoom is None:
            parser.error('the following arguments are required: -z/--zoom')
        if args.tile is None and args.lat_lon is None:
            parser.error('one of the arguments --tile --lat-lon is required')
    return args


def list_sources(config_dir: Path | None) -> int:
    """Print every selectable map source with its index."""
    settings = SettingsService(config_dir).load()
    library = MapSourceLibrary(settings.custom_map_sources)
    for index, name in enumerate(library.source_names()):
        print(f'{index:3d}  {name}')
    return 0


def run(args: argparse.Namespace) -> int:
    """Prefetch the requested window and report what ended up cached."""
    settings_service = SettingsService(args.config_dir)
    settings = settings_service.load_adjusted(MapSourceLibrary().num_fixed_sources())

    overrides: dict = {}
    if args.source is not None:
        overrides['map_source_index'] = args.source
    if args.disk_cache is not None:
        overrides['disk_cache_path'] = args.disk_cache
    if args.offline:
        overrides['online_mode'] = False
    if overrides:
        settings = TileCacheSettings.model_validate({**settings.model_dump(), **overrides})
        if args.save:
            settings_service.save(settings)

    if settings.disk_cache_path is not None:
        Path(settings.disk_cache_path).mkdir(parents=True, exist_ok=True)

    if args.tile is not None:
        tile_x, tile_y = args.tile
    else:
        tile_x, tile_y = lat_lon_to_tile(args.lat_lon[0], args.lat_lon[1], args.zoom)

    notifier = TileUpdateNotifier()
    loader = TileLoader(resolve_cache_dir())
    with loader:
        manager = MapTileManager(
            notifier,
            settings,
            disk_store=DiskTileStore(loader),
            loader=loader,
        )
        if manager.is_overzoomed():
            logger.warning(
                'Zoom %d exceeds maximum %d of %r',
                args.zoom,
                manager.map_source.max_zoom_level(),
                manager.map_source.name,
            )
        manager.centre_map(args.zoom, tile_x, tile_y)
        available = manager.prefetch_window(args.radius)
        logger.info('%d tiles already available, waiting for downloads', available)
        log_thread_status('prefetch started')
        finished = manager.wait_for_pending(args.timeout)
        if not finished:
            logger.warning('Downloads still pending after %.0f s', args.timeout)
        cached = sum(manager.layer_grid(i).loaded_count() for i in range(manager.num_layers))
        stats = loader.stats

    logger.info(
        'Prefetch of %r z=%d around (%d, %d): %d in memory, %d loaded, %d failed, '
        '%d saved to disk',
        manager.map_source.name,
        args.zoom,
        tile_x,
        tile_y,
        cached,
        stats['loaded'],
        stats['failed'],
        stats['downloaded'],
    )
    log_memory_usage('prefetch finished')
    return 0 if finished else 1


def main(argv: list[str] | None = None) -> int:
    """Main application entry point."""
    args = parse_args(argv)
    log_file = setup_logging(args.verbose)
    try:
        if args.list_sources:
            return list_sources(args.config_dir)
        logger.info('Starting tile prefetch, log file %s', log_file)
        return run(args)
    except Exception as e:
        logger.error('Tile prefetch failed: %s', e, exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
