"""HTTP client infrastructure."""
from infrastructure.http.client import (
    cleanup_sqlite_cache,
    make_http_session,
    parse_tile_url,
    resolve_cache_dir,
)

__all__ = [
    'cleanup_sqlite_cache',
    'make_http_session',
    'parse_tile_url',
    'resolve_cache_dir',
]
