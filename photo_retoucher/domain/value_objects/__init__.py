"""Value objects - immutable data with validation."""

from .geometry import Point, Rect, Size, ZoomResult
from .config import EngineConfig
from .options import AspectRatio, OutputResolution, ProcessingOptions, ProjectSettings

__all__ = [
    'Point',
    'Rect',
    'Size',
    'ZoomResult',
    'EngineConfig',
    'AspectRatio',
    'OutputResolution',
    'ProcessingOptions',
    'ProjectSettings',
]
