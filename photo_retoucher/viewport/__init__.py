"""Headless viewport: zoom, pan, comparison and mask drawing."""

from .controller import Interaction, ViewportController, ViewportFrame, ViewportMode, ViewportTransform
from .mask_surface import MaskSurface

__all__ = [
    'Interaction',
    'ViewportController',
    'ViewportFrame',
    'ViewportMode',
    'ViewportTransform',
    'MaskSurface',
]
