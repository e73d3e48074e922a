from __future__ import annotations

import contextlib
import sqlite3
import ssl
import time
from datetime import timedelta
from pathlib import Path

import aiohttp
import certifi
from aiohttp_client_cache import CachedSession, SQLiteBackend
from yarl import URL

from shared.constants import (
    HTTP_CACHE_DIR,
    HTTP_CACHE_ENABLED,
    HTTP_CACHE_EXPIRE_HOURS,
    HTTP_CACHE_RESPECT_HEADERS,
    HTTP_CACHE_STALE_IF_ERROR_HOURS,
    TILE_USER_AGENT,
)
from shared.portable import get_portable_path, is_portable_mode, user_local_dir

_TILE_URL_SCHEMES = ('http', 'https')


def resolve_cache_dir() -> Path:
    """Directory of the HTTP response cache."""
    # Portable mode: cache beside the executable
    if is_portable_mode():
        return get_portable_path('cache/http')

    raw_dir = Path(HTTP_CACHE_DIR)
    if raw_dir.is_absolute():
        return raw_dir
    return (user_local_dir() / raw_dir).resolve()


def cleanup_sqlite_cache(cache_dir: Path) -> None:
    """Force cleanup of SQLite cache connections."""
    cache_file = cache_dir / 'http_cache.sqlite'
    if cache_file.exists():
        # Close any remaining SQLite connections
        conn = sqlite3.connect(cache_file)
        conn.execute('PRAGMA wal_checkpoint(TRUNCATE);')
        conn.close()

        time.sleep(0.1)


def make_http_session(cache_dir: Path | None) -> aiohttp.ClientSession:
    """Create the session used for tile downloads.

    Must be called from inside the event loop that will use the session.
    """
    # SSL context with certifi CA bundle
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(ssl=ssl_context)
    headers = {'User-Agent': TILE_USER_AGENT}

    use_cache = HTTP_CACHE_ENABLED and cache_dir is not None
    if use_cache:
        cache_dir.mkdir(parents=True, exist_ok=True)
        cache_path = cache_dir / 'http_cache.sqlite'
        with contextlib.suppress(sqlite3.Error):
            if not cache_path.exists():
                with sqlite3.connect(cache_path) as _conn:
                    _conn.execute('PRAGMA journal_mode=WAL;')
        expire_td = timedelta(hours=max(0, int(HTTP_CACHE_EXPIRE_HOURS)))
        stale_hours = int(HTTP_CACHE_STALE_IF_ERROR_HOURS)
        stale_param: bool | timedelta
        stale_param = timedelta(hours=stale_hours) if stale_hours > 0 else False
        backend = SQLiteBackend(str(cache_path), expire_after=expire_td)
        return CachedSession(
            cache=backend,
            connector=connector,
            headers=headers,
            expire_after=expire_td,
            cache_control=bool(HTTP_CACHE_RESPECT_HEADERS),
            stale_if_error=stale_param,
        )
    return aiohttp.ClientSession(connector=connector, headers=headers)


def parse_tile_url(url: str) -> URL:
    """Validate a tile URL.

    Raises:
        ValueError: the URL is not an absolute http(s) URL with a host.
    """
    parsed = URL(url)
    if parsed.scheme not in _TILE_URL_SCHEMES or not parsed.host:
        msg = f'Malformed tile URL: {url!r}'
        raise ValueError(msg)
    return parsed
