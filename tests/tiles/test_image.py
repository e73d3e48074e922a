"""Tests for TileImage handles."""

from __future__ import annotations

from PIL import Image

from tiles.image import ImageFlags, TileImage, TileRequest


class TestTileImage:
    """Tests for TileImage state transitions."""

    def test_new_handle_is_unknown(self):
        tile = TileImage(TileRequest(0, 3, 1, 2))
        assert tile.width == -1
        assert tile.height == -1
        assert tile.image is None
        assert tile.flags == ImageFlags.NONE
        assert not tile.is_complete
        assert not tile.has_failed

    def test_from_image(self):
        img = Image.new('RGB', (256, 256))
        tile = TileImage.from_image(img)
        assert tile.width == 256
        assert tile.height == 256
        assert tile.image is img
        assert tile.is_complete
        assert tile.request is None

    def test_progressive_flags(self):
        tile = TileImage()
        flags = tile.set_size(256, 128)
        assert flags & ImageFlags.WIDTH
        assert flags & ImageFlags.HEIGHT
        assert not flags & ImageFlags.ALLBITS
        assert (tile.width, tile.height) == (256, 128)
        assert tile.image is None

        flags = tile.mark_progress()
        assert flags & ImageFlags.SOMEBITS

        flags = tile.complete(Image.new('RGB', (256, 128)))
        assert flags & ImageFlags.ALLBITS
        assert tile.is_complete

    def test_fail(self):
        tile = TileImage()
        flags = tile.fail()
        assert flags & ImageFlags.ERROR
        assert tile.has_failed
        assert not tile.is_complete

    def test_abort(self):
        tile = TileImage()
        flags = tile.fail(ImageFlags.ABORT)
        assert flags & ImageFlags.ABORT
        assert not flags & ImageFlags.ERROR
        assert tile.has_failed

    def test_repr_mentions_size(self):
        tile = TileImage()
        tile.set_size(10, 20)
        assert '10x20' in repr(tile)


class TestTileRequest:
    """Tests for TileRequest identity."""

    def test_equality_includes_generation(self):
        assert TileRequest(0, 5, 1, 2, 1) == TileRequest(0, 5, 1, 2, 1)
        assert TileRequest(0, 5, 1, 2, 1) != TileRequest(0, 5, 1, 2, 2)

    def test_default_generation(self):
        assert TileRequest(1, 2, 3, 4).generation == 0
