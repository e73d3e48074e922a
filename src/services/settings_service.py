from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import tomlkit

from domain.models import TileCacheSettings
from shared.constants import CONFIG_FILE_NAME, LEGACY_NUM_FIXED_MAPS
from shared.portable import user_config_dir

logger = logging.getLogger(__name__)


def adjust_selected_map(settings: TileCacheSettings, num_fixed: int) -> TileCacheSettings:
    """Keep the selected source pointing at the same map after the built-ins changed.

    Custom sources are numbered after the built-in ones, so when the number
    of built-in sources changes, a selected custom source shifts by the
    difference. The current count is recorded for next time.
    """
    source_num = settings.map_source_index
    prev_num_fixed = settings.num_fixed_maps or LEGACY_NUM_FIXED_MAPS
    if num_fixed != prev_num_fixed and (
        source_num >= prev_num_fixed or source_num >= num_fixed
    ):
        source_num = max(0, source_num + num_fixed - prev_num_fixed)
        logger.info(
            'Built-in map sources changed %d -> %d, selected source now %d',
            prev_num_fixed,
            num_fixed,
            source_num,
        )
    return settings.model_copy(
        update={'map_source_index': source_num, 'num_fixed_maps': num_fixed},
    )


class SettingsService:
    """Loads and saves TileCacheSettings as a TOML file.

    A missing file yields default settings; a malformed one raises
    pydantic.ValidationError.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self.base_dir = Path(base_dir) if base_dir else user_config_dir()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.base_dir / CONFIG_FILE_NAME

    def exists(self) -> bool:
        return self.config_file.exists()

    def load(self) -> TileCacheSettings:
        if not self.config_file.exists():
            logger.info('No config at %s, using defaults', self.config_file)
            return TileCacheSettings()
        text = self.config_file.read_text(encoding='utf-8')
        data = tomlkit.parse(text).unwrap()
        settings = TileCacheSettings.model_validate(data)
        logger.info(
            'Config loaded: source=%d disk_cache=%s online=%s',
            settings.map_source_index,
            settings.disk_cache_path,
            settings.online_mode,
        )
        return settings

    def save(self, data: TileCacheSettings | dict[str, Any]) -> Path:
        settings = (
            data if isinstance(data, TileCacheSettings) else TileCacheSettings.model_validate(data)
        )
        # TOML has no null: absent keys fall back to model defaults on load
        text = tomlkit.dumps(settings.model_dump(mode='json', exclude_none=True))
        self.config_file.write_text(text, encoding='utf-8')
        return self.config_file

    def update(self, **changes: Any) -> TileCacheSettings:
        """Apply ``changes`` to the stored settings and persist them."""
        current = self.load().model_dump()
        current.update(changes)
        settings = TileCacheSettings.model_validate(current)
        self.save(settings)
        return settings

    def load_adjusted(self, num_fixed: int) -> TileCacheSettings:
        """Load settings, fix up the selected source index and persist the result."""
        settings = adjust_selected_map(self.load(), num_fixed)
        self.save(settings)
        return settings
