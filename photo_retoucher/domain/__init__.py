"""Domain layer - pure business logic."""

from .entities.asset import AssetStatus, ImageAsset, ImageSource, ResultImage
from .value_objects.config import EngineConfig
from .value_objects.geometry import Point, Rect, Size, ZoomResult
from .value_objects.options import ProcessingOptions, ProjectSettings

__all__ = [
    # Entities
    'AssetStatus',
    'ImageAsset',
    'ImageSource',
    'ResultImage',
    # Value Objects
    'EngineConfig',
    'Point',
    'Rect',
    'Size',
    'ZoomResult',
    'ProcessingOptions',
    'ProjectSettings',
]
