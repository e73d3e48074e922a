"""Qt bridge for tile arrival notifications."""

from __future__ import annotations

import logging

from PySide6.QtCore import QObject, Signal

logger = logging.getLogger(__name__)


class TileUpdateNotifier(QObject):
    """
    Re-emits "tiles updated" as a Qt signal.

    The tile manager calls :meth:`tiles_updated` from the tile loader thread;
    connecting a widget slot to ``tiles_updated_signal`` with the default
    (auto) connection type delivers it on the GUI thread as a queued call.
    """

    tiles_updated_signal = Signal(bool)  # True if a tile loaded, False on failure

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._loaded = 0
        self._failed = 0

    @property
    def loaded_count(self) -> int:
        return self._loaded

    @property
    def failed_count(self) -> int:
        return self._failed

    def tiles_updated(self, loaded: bool) -> None:
        if loaded:
            self._loaded += 1
        else:
            self._failed += 1
            logger.debug('Tile fetch failed (%d so far)', self._failed)
        self.tiles_updated_signal.emit(loaded)
