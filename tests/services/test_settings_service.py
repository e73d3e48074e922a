"""Tests for SettingsService and source index migration."""

import pytest
import tomlkit
from pydantic import ValidationError

from domain.models import TileCacheSettings
from services.settings_service import SettingsService, adjust_selected_map
from tiles.sources import MapSource


@pytest.fixture
def service(tmp_path):
    return SettingsService(tmp_path / 'configs')


class TestAdjustSelectedMap:
    """Tests for adjust_selected_map."""

    def test_unchanged_count(self):
        settings = TileCacheSettings(map_source_index=7, num_fixed_maps=5)
        adjusted = adjust_selected_map(settings, 5)
        assert adjusted.map_source_index == 7
        assert adjusted.num_fixed_maps == 5

    def test_custom_source_follows_fewer_builtins(self):
        """Stored count 0 means the legacy six built-in sources."""
        settings = TileCacheSettings(map_source_index=7, num_fixed_maps=0)
        adjusted = adjust_selected_map(settings, 5)
        assert adjusted.map_source_index == 6
        assert adjusted.num_fixed_maps == 5

    def test_custom_source_follows_more_builtins(self):
        settings = TileCacheSettings(map_source_index=5, num_fixed_maps=5)
        adjusted = adjust_selected_map(settings, 8)
        assert adjusted.map_source_index == 8

    def test_builtin_source_kept(self):
        settings = TileCacheSettings(map_source_index=2, num_fixed_maps=6)
        adjusted = adjust_selected_map(settings, 5)
        assert adjusted.map_source_index == 2

    def test_never_negative(self):
        settings = TileCacheSettings(map_source_index=3, num_fixed_maps=9)
        adjusted = adjust_selected_map(settings, 2)
        assert adjusted.map_source_index == 0

    def test_input_not_modified(self):
        settings = TileCacheSettings(map_source_index=7)
        adjust_selected_map(settings, 5)
        assert settings.map_source_index == 7
        assert settings.num_fixed_maps == 0


class TestSettingsService:
    """Tests for TOML persistence."""

    def test_creates_base_dir(self, tmp_path):
        service = SettingsService(tmp_path / 'a' / 'b')
        assert service.base_dir.is_dir()
        assert service.config_file.name == 'config.toml'

    def test_missing_file_gives_defaults(self, service):
        assert not service.exists()
        assert service.load() == TileCacheSettings()

    def test_save_and_load(self, service, tmp_path):
        custom = MapSource(
            name='Local',
            base_urls=('http://localhost/{z}/{x}/{y}.png',),
            site_names=('localhost',),
            max_zoom=15,
        )
        settings = TileCacheSettings(
            map_source_index=5,
            num_fixed_maps=5,
            disk_cache_path=str(tmp_path / 'tiles'),
            online_mode=False,
            custom_map_sources=[custom],
        )
        path = service.save(settings)
        assert path == service.config_file
        assert service.exists()
        assert service.load() == settings

    def test_none_path_not_written(self, service):
        service.save(TileCacheSettings())
        data = tomlkit.parse(service.config_file.read_text(encoding='utf-8'))
        assert 'disk_cache_path' not in data
        assert service.load().disk_cache_path is None

    def test_save_dict(self, service):
        service.save({'online_mode': False})
        assert service.load().online_mode is False

    def test_update(self, service):
        service.save(TileCacheSettings(map_source_index=1))
        updated = service.update(online_mode=False)
        assert updated.map_source_index == 1
        assert updated.online_mode is False
        assert service.load() == updated

    def test_malformed_file_raises(self, service):
        service.config_file.write_text('map_source_index = -4\n', encoding='utf-8')
        with pytest.raises(ValidationError):
            service.load()

    def test_load_adjusted_persists(self, service):
        service.save(TileCacheSettings(map_source_index=7))
        adjusted = service.load_adjusted(5)
        assert adjusted.map_source_index == 6
        stored = service.load()
        assert stored.map_source_index == 6
        assert stored.num_fixed_maps == 5

    def test_default_location(self, tmp_path, monkeypatch):
        monkeypatch.setenv('APPDATA', str(tmp_path))
        service = SettingsService()
        assert service.base_dir == tmp_path / 'TileCacher' / 'configs'
