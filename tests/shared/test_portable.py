"""Tests for shared.portable directory helpers."""

from unittest.mock import patch

from shared.portable import is_portable_mode, user_config_dir, user_local_dir


class TestPortableMode:
    """Tests for portable mode detection."""

    def test_detects_portable_executable(self):
        with patch('sys.argv', ['C:/apps/TileCacher_portable.exe']):
            assert is_portable_mode()

    def test_regular_executable(self):
        with patch('sys.argv', ['/usr/bin/tilecacher']):
            assert not is_portable_mode()

    def test_portable_dirs_beside_executable(self, tmp_path):
        exe = tmp_path / 'TileCacher_portable.exe'
        with patch('sys.argv', [str(exe)]):
            assert user_config_dir() == tmp_path / 'configs'
            assert user_local_dir() == tmp_path


class TestUserDirs:
    """Tests for per-user directories."""

    def test_config_dir_from_appdata(self, tmp_path, monkeypatch):
        monkeypatch.setenv('APPDATA', str(tmp_path))
        with patch('sys.argv', ['/usr/bin/tilecacher']):
            assert user_config_dir() == tmp_path / 'TileCacher' / 'configs'

    def test_local_dir_fallback_to_home(self, tmp_path, monkeypatch):
        monkeypatch.delenv('LOCALAPPDATA', raising=False)
        monkeypatch.setattr('pathlib.Path.home', lambda: tmp_path)
        with patch('sys.argv', ['/usr/bin/tilecacher']):
            assert user_local_dir() == tmp_path / 'AppData' / 'Local' / 'TileCacher'
