"""Helpers for portable mode and per-user data directories."""

import os
import sys
from pathlib import Path

from shared.constants import APP_NAME, CONFIG_DIR_NAME


def is_portable_mode() -> bool:
    """
    Detect whether the application runs in portable mode.

    Portable mode is enabled when the executable name contains '_portable',
    for example TileCacher_portable.exe.

    Returns:
        bool: True in portable mode, otherwise False

    """
    exe_name = Path(sys.argv[0]).name.lower()
    return '_portable' in exe_name


def get_app_dir() -> Path:
    """Directory holding the executable."""
    return Path(sys.argv[0]).resolve().parent


def get_portable_path(subdir: str) -> Path:
    """
    Path of a sub-directory next to the executable.

    In portable mode all data lives beside the executable:
    - cache/ - tile and HTTP caches
    - configs/ - configuration files
    - logs/ - log files

    Args:
        subdir: Sub-directory name (e.g. 'cache', 'configs', 'logs')

    Returns:
        Path: Full path of the sub-directory

    """
    return get_app_dir() / subdir


def user_config_dir() -> Path:
    """Roaming per-user configuration directory."""
    if is_portable_mode():
        return get_portable_path(CONFIG_DIR_NAME)
    appdata = os.getenv('APPDATA')
    base = Path(appdata) if appdata else Path.home() / 'AppData' / 'Roaming'
    return base / APP_NAME / CONFIG_DIR_NAME


def user_local_dir() -> Path:
    """Local (non-roaming) per-user directory for caches and logs."""
    if is_portable_mode():
        return get_app_dir()
    local = os.getenv('LOCALAPPDATA')
    base = Path(local) if local else Path.home() / 'AppData' / 'Local'
    return base / APP_NAME
