from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from tiles.sources import MapSource


class TileCacheSettings(BaseModel):
    """Persisted settings that drive the tile cache tiers."""

    model_config = {
        'extra': 'ignore',  # ignore unknown keys from older config files
    }

    # Index of the selected source in the MapSourceLibrary
    map_source_index: int = 0
    # Number of built-in sources when the config was last written (0 = unknown)
    num_fixed_maps: int = 0
    # Root of the disk tile cache; None disables the disk tier
    disk_cache_path: str | None = None
    # False disables the network tier
    online_mode: bool = True
    # User-defined sources, appended after the built-in ones
    custom_map_sources: list[MapSource] = Field(default_factory=list)

    @field_validator('map_source_index', 'num_fixed_maps')
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        v = int(v)
        if v < 0:
            msg = 'Value cannot be negative'
            raise ValueError(msg)
        return v

    @field_validator('disk_cache_path', mode='before')
    @classmethod
    def normalise_disk_cache_path(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def disk_cache_enabled(self) -> bool:
        return self.disk_cache_path is not None
