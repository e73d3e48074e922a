"""Tests for TileCacheSettings."""

import pytest
from pydantic import ValidationError

from domain.models import TileCacheSettings
from tiles.sources import MapSource


class TestTileCacheSettingsDefaults:
    """Tests for default values."""

    def test_defaults(self):
        """Fresh settings select the first source, online, without disk cache."""
        settings = TileCacheSettings()
        assert settings.map_source_index == 0
        assert settings.num_fixed_maps == 0
        assert settings.disk_cache_path is None
        assert settings.online_mode is True
        assert settings.custom_map_sources == []
        assert not settings.disk_cache_enabled


class TestTileCacheSettingsValidators:
    """Tests for TileCacheSettings validators."""

    def test_negative_source_index(self):
        """Negative map_source_index should raise ValidationError."""
        with pytest.raises(ValidationError):
            TileCacheSettings(map_source_index=-1)

    def test_negative_num_fixed_maps(self):
        """Negative num_fixed_maps should raise ValidationError."""
        with pytest.raises(ValidationError):
            TileCacheSettings(num_fixed_maps=-2)

    @pytest.mark.parametrize('value', ['', '   '])
    def test_blank_disk_cache_path(self, value):
        """Blank disk_cache_path disables the disk tier."""
        settings = TileCacheSettings(disk_cache_path=value)
        assert settings.disk_cache_path is None
        assert not settings.disk_cache_enabled

    def test_disk_cache_path(self, tmp_path):
        settings = TileCacheSettings(disk_cache_path=str(tmp_path))
        assert settings.disk_cache_enabled

    def test_unknown_keys_ignored(self):
        """Keys written by older versions are ignored."""
        settings = TileCacheSettings.model_validate({'online_mode': False, 'window_width': 800})
        assert settings.online_mode is False

    def test_custom_sources_from_dict(self):
        settings = TileCacheSettings.model_validate(
            {
                'custom_map_sources': [
                    {
                        'name': 'Local',
                        'base_urls': ['http://localhost/{z}/{x}/{y}.png'],
                        'site_names': ['localhost'],
                    },
                ],
            },
        )
        (source,) = settings.custom_map_sources
        assert isinstance(source, MapSource)
        assert source.site_names == ('localhost',)

    def test_invalid_custom_source(self):
        with pytest.raises(ValidationError):
            TileCacheSettings.model_validate(
                {'custom_map_sources': [{'name': 'x', 'base_urls': [], 'site_names': []}]},
            )
