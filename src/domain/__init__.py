"""Domain layer - configuration models."""
from domain.models import TileCacheSettings

__all__ = [
    'TileCacheSettings',
]
