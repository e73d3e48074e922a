"""Asynchronous tile loader.

Runs an asyncio event loop with a single aiohttp session in a background
thread. Callers on any thread submit work and get a
``concurrent.futures.Future`` back; progress is reported to an image observer
from the loader thread while the body streams in.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

import aiohttp
from PIL import Image, ImageFile

from infrastructure.http.client import make_http_session
from shared.constants import (
    HTTP_OK,
    HTTP_TIMEOUT_DEFAULT,
    TILE_LOADER_CONCURRENCY,
    TILE_LOADER_THREAD_TIMEOUT,
    TILE_STREAM_CHUNK_SIZE,
    TILE_TEMP_SUFFIX,
)
from shared.diagnostics import log_memory_usage
from tiles.image import ImageFlags, TileImage, TileRequest

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import Future
    from pathlib import Path

    from yarl import URL

    from tiles.image import ImageObserver

logger = logging.getLogger(__name__)


class TileLoadError(Exception):
    """A tile could not be fetched (bad HTTP status)."""


class _LoadAborted(Exception):
    """The observer asked to stop loading."""


@dataclass(frozen=True)
class TileResult:
    """Outcome of one tile load, tagged with what it was requested for."""

    request: TileRequest | None
    tile: TileImage | None

    @property
    def ok(self) -> bool:
        return self.tile is not None


class TileLoader:
    """Background HTTP loader for map tiles.

    Usage:
        loader = TileLoader(cache_dir)
        loader.start()

        future = loader.load_image(url, TileImage(request), observer)
        result = future.result()

        loader.stop()
    """

    def __init__(
        self,
        cache_dir: Path | None = None,
        *,
        concurrency: int = TILE_LOADER_CONCURRENCY,
        timeout: float = HTTP_TIMEOUT_DEFAULT,
        session_factory: Callable[[Path | None], aiohttp.ClientSession] | None = None,
    ) -> None:
        """Initialize tile loader.

        Args:
            cache_dir: Directory of the HTTP response cache; None disables it.
            concurrency: Maximum parallel requests.
            timeout: Total timeout of a single request (seconds).
            session_factory: Creates the HTTP session inside the loader loop.
                Defaults to make_http_session.
        """
        self.cache_dir = cache_dir
        self.concurrency = concurrency
        self.timeout = timeout
        self._session_factory = session_factory or make_http_session
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._session: aiohttp.ClientSession | None = None
        self._semaphore: asyncio.Semaphore | None = None
        self._ready = threading.Event()
        self._stats_requested = 0
        self._stats_loaded = 0
        self._stats_failed = 0
        self._stats_downloaded = 0

    def start(self) -> None:
        """Start the loader thread and open the HTTP session."""
        if self.is_running():
            return
        self._ready.clear()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop,
            name='TileLoader',
            daemon=True,
        )
        self._thread.start()
        self._ready.wait(TILE_LOADER_THREAD_TIMEOUT)
        if not self.is_running():
            msg = 'Tile loader thread did not start'
            raise RuntimeError(msg)
        logger.info('TileLoader started (concurrency=%d)', self.concurrency)

    def _run_loop(self) -> None:
        loop = self._loop
        assert loop is not None
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._open())
        except Exception:
            logger.exception('TileLoader failed to open HTTP session')
            loop.close()
            self._ready.set()
            return
        # Signal readiness only once the loop is actually running
        loop.call_soon(self._ready.set)
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    async def _open(self) -> None:
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._session = self._session_factory(self.cache_dir)

    async def _close(self) -> None:
        current = asyncio.current_task()
        pending = [t for t in asyncio.all_tasks() if t is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if self._session is not None:
            await self._session.close()
            self._session = None

    def stop(self, timeout: float = TILE_LOADER_THREAD_TIMEOUT) -> None:
        """Cancel outstanding loads, close the session and stop the thread."""
        if not self.is_running():
            return
        loop = self._loop
        assert loop is not None
        try:
            asyncio.run_coroutine_threadsafe(self._close(), loop).result(timeout)
        except TimeoutError:
            logger.warning('TileLoader session did not close within timeout')
        loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning('TileLoader thread did not stop within timeout')
        self._thread = None
        self._loop = None
        logger.info(
            'TileLoader stopped: %d requested, %d loaded, %d failed, %d downloaded',
            self._stats_requested,
            self._stats_loaded,
            self._stats_failed,
            self._stats_downloaded,
        )
        log_memory_usage('tile loader stopped')

    def is_running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and self._loop is not None
            and self._loop.is_running()
        )

    @property
    def stats(self) -> dict:
        """Get loader statistics."""
        return {
            'requested': self._stats_requested,
            'loaded': self._stats_loaded,
            'failed': self._stats_failed,
            'downloaded': self._stats_downloaded,
            'running': self.is_running(),
        }

    def _submit(self, coro) -> Future:
        if not self.is_running():
            coro.close()
            msg = 'TileLoader is not running'
            raise RuntimeError(msg)
        assert self._loop is not None
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def load_image(
        self,
        url: str | URL,
        tile: TileImage,
        observer: ImageObserver,
    ) -> Future[TileResult]:
        """Start loading ``url`` into ``tile``.

        The observer is called from the loader thread: with WIDTH|HEIGHT once
        the header is parsed, SOMEBITS as data arrives, then ALLBITS or ERROR.
        If it returns False before the end, or the loader is stopped first,
        loading stops with ABORT.
        """
        self._stats_requested += 1
        return self._submit(self._load_image(str(url), tile, observer))

    def download_file(
        self,
        url: str | URL,
        target: Path,
        observer: ImageObserver | None = None,
    ) -> Future[bool]:
        """Stream ``url`` into ``target`` via a temporary file.

        The observer, if any, receives ``(None, ALLBITS)`` on success,
        ``(None, ERROR)`` on failure or ``(None, ABORT)`` if the loader stops
        first.
        """
        self._stats_requested += 1
        return self._submit(self._download_file(str(url), target, observer))

    @staticmethod
    def _notify(
        observer: ImageObserver | None,
        tile: TileImage | None,
        flags: ImageFlags,
    ) -> bool:
        if observer is None:
            return True
        try:
            return bool(observer(tile, flags))
        except Exception:
            logger.exception('Image observer failed')
            return False

    async def _load_image(
        self,
        url: str,
        tile: TileImage,
        observer: ImageObserver,
    ) -> TileResult:
        assert self._semaphore is not None
        try:
            async with self._semaphore:
                image = await self._stream_image(url, tile, observer)
        except _LoadAborted:
            logger.debug('Tile load aborted by observer: %s', url)
            flags = tile.fail(ImageFlags.ABORT)
            self._notify(observer, tile, flags)
            return TileResult(tile.request, None)
        except asyncio.CancelledError:
            logger.debug('Tile load cancelled: %s', url)
            flags = tile.fail(ImageFlags.ABORT)
            self._notify(observer, tile, flags)
            raise
        except (
            aiohttp.ClientError,
            TimeoutError,
            OSError,
            Image.DecompressionBombError,
            TileLoadError,
        ) as e:
            logger.warning('Tile load failed for %s: %s', url, e)
            self._stats_failed += 1
            flags = tile.fail()
            self._notify(observer, tile, flags)
            return TileResult(tile.request, None)
        self._stats_loaded += 1
        flags = tile.complete(image)
        self._notify(observer, tile, flags)
        return TileResult(tile.request, tile)

    async def _stream_image(
        self,
        url: str,
        tile: TileImage,
        observer: ImageObserver,
    ) -> Image.Image:
        assert self._session is not None
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with self._session.get(url, timeout=timeout) as resp:
            if resp.status != HTTP_OK:
                msg = f'HTTP {resp.status}'
                raise TileLoadError(msg)
            parser = ImageFile.Parser()
            async for chunk in resp.content.iter_chunked(TILE_STREAM_CHUNK_SIZE):
                parser.feed(chunk)
                if parser.image is not None and tile.width < 0:
                    flags = tile.set_size(*parser.image.size)
                else:
                    flags = tile.mark_progress()
                if not self._notify(observer, tile, flags):
                    raise _LoadAborted
            return parser.close()

    async def _download_file(
        self,
        url: str,
        target: Path,
        observer: ImageObserver | None,
    ) -> bool:
        assert self._semaphore is not None
        assert self._session is not None
        temp = target.with_name(target.name + TILE_TEMP_SUFFIX)
        async with self._semaphore:
            try:
                timeout = aiohttp.ClientTimeout(total=self.timeout)
                async with self._session.get(url, timeout=timeout) as resp:
                    if resp.status != HTTP_OK:
                        msg = f'HTTP {resp.status}'
                        raise TileLoadError(msg)
                    with temp.open('wb') as fh:
                        async for chunk in resp.content.iter_chunked(TILE_STREAM_CHUNK_SIZE):
                            fh.write(chunk)
                temp.replace(target)
            except asyncio.CancelledError:
                logger.debug('Tile download cancelled: %s', url)
                temp.unlink(missing_ok=True)
                self._notify(observer, None, ImageFlags.ABORT)
                raise
            except (aiohttp.ClientError, TimeoutError, OSError, TileLoadError) as e:
                logger.warning('Tile download failed for %s: %s', url, e)
                self._stats_failed += 1
                temp.unlink(missing_ok=True)
                self._notify(observer, None, ImageFlags.ERROR)
                return False
        self._stats_downloaded += 1
        logger.debug('Tile saved to %s', target)
        self._notify(observer, None, ImageFlags.ALLBITS)
        return True

    def __enter__(self) -> TileLoader:
        """Context manager entry - starts the loader."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - stops the loader."""
        self.stop()
