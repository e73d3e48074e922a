"""Tests for DiskTileStore."""

from __future__ import annotations

import os
import time
from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest
from PIL import Image

from tiles.disk import DiskTileStore

REL_PATH = 'tile.example.org/5/10/12.png'


def _write_png(path, size=(256, 256)):
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new('RGB', size, (10, 20, 30)).save(path, format='PNG')


@pytest.fixture
def loader():
    """Running loader stub whose downloads stay pending."""
    mock = MagicMock()
    mock.is_running.return_value = True
    mock.download_file.side_effect = lambda url, target, observer: Future()
    return mock


class TestDiskTileStoreGet:
    """Tests for reading cached tiles."""

    def test_missing_file(self, tmp_path):
        store = DiskTileStore()
        assert store.get(tmp_path, REL_PATH, online_mode=True) is None

    def test_reads_fresh_tile(self, tmp_path):
        _write_png(tmp_path / REL_PATH)
        tile = DiskTileStore().get(tmp_path, REL_PATH, online_mode=True)
        assert tile is not None
        assert tile.width == 256
        assert tile.is_complete
        assert tile.image.size == (256, 256)

    def test_expired_tile_ignored_online(self, tmp_path):
        tile_file = tmp_path / REL_PATH
        _write_png(tile_file)
        old = time.time() - 21 * 24 * 3600
        os.utime(tile_file, (old, old))
        store = DiskTileStore()
        assert store.get(tmp_path, REL_PATH, online_mode=True) is None

    def test_expired_tile_used_offline(self, tmp_path):
        tile_file = tmp_path / REL_PATH
        _write_png(tile_file)
        old = time.time() - 21 * 24 * 3600
        os.utime(tile_file, (old, old))
        tile = DiskTileStore().get(tmp_path, REL_PATH, online_mode=False)
        assert tile is not None
        assert tile.width == 256

    def test_empty_file(self, tmp_path):
        tile_file = tmp_path / REL_PATH
        tile_file.parent.mkdir(parents=True)
        tile_file.write_bytes(b'')
        assert DiskTileStore().get(tmp_path, REL_PATH, online_mode=False) is None

    def test_corrupt_file(self, tmp_path):
        tile_file = tmp_path / REL_PATH
        tile_file.parent.mkdir(parents=True)
        tile_file.write_bytes(b'not an image at all')
        assert DiskTileStore().get(tmp_path, REL_PATH, online_mode=False) is None

    def test_custom_max_age(self, tmp_path):
        tile_file = tmp_path / REL_PATH
        _write_png(tile_file)
        old = time.time() - 120
        os.utime(tile_file, (old, old))
        store = DiskTileStore(max_age_seconds=60)
        assert store.get(tmp_path, REL_PATH, online_mode=True) is None


class TestDiskTileStoreSave:
    """Tests for scheduling downloads into the cache."""

    def test_no_loader(self, tmp_path):
        assert not DiskTileStore().save('https://t/1.png', tmp_path, REL_PATH, None)

    def test_loader_not_running(self, tmp_path, loader):
        loader.is_running.return_value = False
        store = DiskTileStore(loader)
        assert not store.save('https://t/1.png', tmp_path, REL_PATH, None)
        loader.download_file.assert_not_called()

    def test_missing_cache_root(self, tmp_path, loader):
        store = DiskTileStore(loader)
        assert not store.save('https://t/1.png', tmp_path / 'nope', REL_PATH, None)
        loader.download_file.assert_not_called()

    def test_schedules_download(self, tmp_path, loader):
        store = DiskTileStore(loader)
        observer = MagicMock()
        assert store.save('https://t/1.png', tmp_path, REL_PATH, observer)
        target = tmp_path / REL_PATH
        assert target.parent.is_dir()
        loader.download_file.assert_called_once_with('https://t/1.png', target, observer)
        assert store.is_downloading(target)
        assert len(store.pending_futures()) == 1

    def test_deduplicates_in_flight_download(self, tmp_path, loader):
        store = DiskTileStore(loader)
        assert store.save('https://t/1.png', tmp_path, REL_PATH, None)
        assert store.save('https://t/1.png', tmp_path, REL_PATH, None)
        assert loader.download_file.call_count == 1

    def test_completion_allows_new_download(self, tmp_path, loader):
        store = DiskTileStore(loader)
        store.save('https://t/1.png', tmp_path, REL_PATH, None)
        future = store.pending_futures()[0]
        future.set_result(True)
        assert not store.is_downloading(tmp_path / REL_PATH)
        assert store.pending_futures() == []
        assert store.save('https://t/1.png', tmp_path, REL_PATH, None)
        assert loader.download_file.call_count == 2

    def test_loader_stopped_during_save(self, tmp_path, loader):
        loader.download_file.side_effect = RuntimeError('TileLoader is not running')
        store = DiskTileStore(loader)
        assert not store.save('https://t/1.png', tmp_path, REL_PATH, None)
        assert not store.is_downloading(tmp_path / REL_PATH)
