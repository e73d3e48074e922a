"""GUI integration for the tile cache."""

from gui.tile_notifier import TileUpdateNotifier

__all__ = ['TileUpdateNotifier']
