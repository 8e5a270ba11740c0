"""Domain entities."""

from .asset import AssetStatus, ImageAsset, ImageSource, ResultImage

__all__ = ['AssetStatus', 'ImageAsset', 'ImageSource', 'ResultImage']
