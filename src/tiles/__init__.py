"""Tile caching and management system.

This module provides:
- ToroidalTileGrid: fixed-size wrap-around memory cache for one map layer
- TileImage: handle of a possibly still loading tile image
- MapTileManager: memory -> disk -> network tile lookup for a map view
- DiskTileStore: file-system tile cache
- TileLoader: background asyncio/aiohttp tile loader
- MapSource, MapSourceLibrary: tile URL and cache path construction
"""

from tiles.disk import DiskTileStore
from tiles.grid import ToroidalTileGrid, wrap
from tiles.image import ImageFlags, TileImage, TileRequest
from tiles.loader import TileLoader, TileLoadError, TileResult
from tiles.manager import MapTileManager
from tiles.sources import BUILTIN_SOURCES, MapSource, MapSourceLibrary

__all__ = [
    'BUILTIN_SOURCES',
    'DiskTileStore',
    'ImageFlags',
    'MapSource',
    'MapSourceLibrary',
    'MapTileManager',
    'TileImage',
    'TileLoadError',
    'TileLoader',
    'TileRequest',
    'TileResult',
    'ToroidalTileGrid',
    'wrap',
]
