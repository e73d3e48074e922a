"""Shared utilities and helpers."""
from shared.diagnostics import (
    get_memory_info,
    log_memory_usage,
    log_thread_status,
)
from shared.portable import is_portable_mode, user_config_dir, user_local_dir

__all__ = [
    'get_memory_info',
    'is_portable_mode',
    'log_memory_usage',
    'log_thread_status',
    'user_config_dir',
    'user_local_dir',
]
