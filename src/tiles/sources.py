"""Map tile sources and the catalog of available sources.

A map source knows how to build the URL of a tile and its path inside the
disk cache. Sources may have several layers (for instance a base map plus a
transparent overlay) sharing one zoom/coordinate system.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from shared.constants import MAP_SOURCE_DEFAULT_MAX_ZOOM, TILE_DEFAULT_EXTENSION

logger = logging.getLogger(__name__)


class MapSource(BaseModel):
    """Tile source with one URL template per layer.

    URL templates use ``{z}``, ``{x}`` and ``{y}`` placeholders and an
    optional ``{key}`` for sources that require an API key.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    base_urls: tuple[str, ...]
    # Disk cache sub-directory per layer
    site_names: tuple[str, ...]
    # File extension per layer; a single entry applies to every layer
    extensions: tuple[str, ...] = (TILE_DEFAULT_EXTENSION,)
    max_zoom: int = MAP_SOURCE_DEFAULT_MAX_ZOOM
    api_key: str | None = None

    @field_validator('base_urls', 'site_names')
    @classmethod
    def validate_not_empty(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            msg = 'Map source needs at least one layer'
            raise ValueError(msg)
        return v

    @field_validator('site_names')
    @classmethod
    def normalise_site_names(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(name.strip('/') for name in v)

    @field_validator('max_zoom')
    @classmethod
    def validate_max_zoom(cls, v: int) -> int:
        if v < 0:
            msg = 'max_zoom cannot be negative'
            raise ValueError(msg)
        return v

    @model_validator(mode='after')
    def validate_layers(self) -> MapSource:
        if len(self.site_names) != len(self.base_urls):
            msg = (
                f'Map source {self.name!r}: {len(self.base_urls)} URLs '
                f'but {len(self.site_names)} site names'
            )
            raise ValueError(msg)
        if len(self.extensions) not in (1, len(self.base_urls)):
            msg = f'Map source {self.name!r}: extensions do not match layers'
            raise ValueError(msg)
        return self

    def num_layers(self) -> int:
        return len(self.base_urls)

    def max_zoom_level(self) -> int:
        return self.max_zoom

    def _extension(self, layer: int) -> str:
        if len(self.extensions) == 1:
            return self.extensions[0]
        return self.extensions[layer]

    @staticmethod
    def _wrap_x(zoom: int, x: int) -> int:
        # The world repeats horizontally
        return x % (1 << zoom) if zoom >= 0 else x

    def tile_url(self, layer: int, zoom: int, x: int, y: int) -> str:
        """Build the URL of a tile.

        Raises:
            ValueError: the template cannot be filled (unknown placeholder,
                missing API key).
        """
        template = self.base_urls[layer]
        if '{key}' in template and not self.api_key:
            msg = f'Map source {self.name!r} requires an API key'
            raise ValueError(msg)
        try:
            return template.format(
                z=zoom,
                x=self._wrap_x(zoom, x),
                y=y,
                key=self.api_key or '',
            )
        except (KeyError, IndexError) as e:
            msg = f'Invalid URL template for {self.name!r}: {template}'
            raise ValueError(msg) from e

    def tile_relative_path(self, layer: int, zoom: int, x: int, y: int) -> str:
        """Path of a tile relative to the disk cache root."""
        return (
            f'{self.site_names[layer]}/{zoom}/{self._wrap_x(zoom, x)}/{y}.'
            f'{self._extension(layer)}'
        )


_OSM_MAPNIK_URL = 'https://tile.openstreetmap.org/{z}/{x}/{y}.png'

BUILTIN_SOURCES: tuple[MapSource, ...] = (
    MapSource(
        name='OpenStreetMap Mapnik',
        base_urls=(_OSM_MAPNIK_URL,),
        site_names=('tile.openstreetmap.org',),
        max_zoom=19,
    ),
    MapSource(
        name='OpenTopoMap',
        base_urls=('https://tile.opentopomap.org/{z}/{x}/{y}.png',),
        site_names=('tile.opentopomap.org',),
        max_zoom=17,
    ),
    MapSource(
        name='CyclOSM',
        base_urls=('https://a.tile-cyclosm.openstreetmap.fr/cyclosm/{z}/{x}/{y}.png',),
        site_names=('tile-cyclosm.openstreetmap.fr',),
        max_zoom=20,
    ),
    MapSource(
        name='OpenSeaMap',
        base_urls=(
            _OSM_MAPNIK_URL,
            'https://tiles.openseamap.org/seamark/{z}/{x}/{y}.png',
        ),
        site_names=('tile.openstreetmap.org', 'tiles.openseamap.org/seamark'),
        max_zoom=18,
    ),
    MapSource(
        name='OpenCycleMap',
        base_urls=('https://tile.thunderforest.com/cycle/{z}/{x}/{y}.png?apikey={key}',),
        site_names=('tile.thunderforest.com/cycle',),
        max_zoom=18,
    ),
)


class MapSourceLibrary:
    """Built-in sources followed by user-defined ones."""

    def __init__(self, custom_sources: list[MapSource] | None = None) -> None:
        self._fixed = list(BUILTIN_SOURCES)
        self._custom = list(custom_sources or [])
        if self._custom:
            logger.debug(
                'Map source library: %d built-in, %d custom sources',
                len(self._fixed),
                len(self._custom),
            )

    def num_fixed_sources(self) -> int:
        return len(self._fixed)

    def num_sources(self) -> int:
        return len(self._fixed) + len(self._custom)

    def get_source(self, index: int) -> MapSource | None:
        """Source at ``index``, or None if there is no such source."""
        if 0 <= index < self.num_sources():
            return (self._fixed + self._custom)[index]
        return None

    def source_names(self) -> list[str]:
        return [s.name for s in self._fixed + self._custom]
