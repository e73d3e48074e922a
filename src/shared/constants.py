APP_NAME = 'TileCacher'

# --- Memory tile grid
# Side of the toroidal tile window; odd so the centre tile has a cell of its own
TILE_GRID_SIZE = 15
# Tiles representable on each side of the centre tile
TILE_GRID_RADIUS = TILE_GRID_SIZE // 2

# --- Disk tile cache
# Tiles older than this are refreshed from the network when online
TILE_CACHE_MAX_AGE_DAYS = 20
TILE_CACHE_MAX_AGE_SECONDS = TILE_CACHE_MAX_AGE_DAYS * 24 * 60 * 60
# Suffix of files being downloaded, renamed into place when complete
TILE_TEMP_SUFFIX = '.temp'
# Default extension when a source does not specify one
TILE_DEFAULT_EXTENSION = 'png'
# Default maximum zoom of a map source
MAP_SOURCE_DEFAULT_MAX_ZOOM = 18
# Number of built-in map sources assumed when the config predates the counter
LEGACY_NUM_FIXED_MAPS = 6

# --- Tile loader
# Parallel HTTP requests issued by the loader
TILE_LOADER_CONCURRENCY = 8
# Chunk size used when streaming a tile body (bytes)
TILE_STREAM_CHUNK_SIZE = 8192
# Seconds to wait for the loader thread to start or stop
TILE_LOADER_THREAD_TIMEOUT = 10.0
# User agent sent with tile requests (tile servers reject anonymous clients)
TILE_USER_AGENT = 'TileCacher/1.0'

# --- HTTP status codes
HTTP_OK = 200

# --- Network request defaults
HTTP_TIMEOUT_DEFAULT = 20.0

# --- HTTP response cache (aiohttp-client-cache)
HTTP_CACHE_ENABLED = True
# Cache directory (relative paths resolve against the user's local app data)
HTTP_CACHE_DIR = '.cache/http'
# Time to live (hours)
HTTP_CACHE_EXPIRE_HOURS = 168
# Honour Cache-Control/ETag/Last-Modified
HTTP_CACHE_RESPECT_HEADERS = True
# Allow stale responses on network errors (hours); 0 disables
HTTP_CACHE_STALE_IF_ERROR_HOURS = 72

# --- Configuration
CONFIG_FILE_NAME = 'config.toml'
CONFIG_DIR_NAME = 'configs'
LOG_FILE_NAME = 'tilecacher.log'

# --- Web Mercator
# Latitude limit of the projection (degrees)
MERCATOR_MAX_LAT_DEG = 85.05112878
WORLD_LNG_SPAN_DEG = 360.0
WORLD_LNG_HALF_SPAN_DEG = 180.0
