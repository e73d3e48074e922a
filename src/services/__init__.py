"""Services package - configuration persistence."""

from services.settings_service import SettingsService, adjust_selected_map

__all__ = [
    'SettingsService',
    'adjust_selected_map',
]
