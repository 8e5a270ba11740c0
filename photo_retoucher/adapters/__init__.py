"""Adapters - implementations of the application ports."""

from .gemini_adapter import GeminiImageService

__all__ = ['GeminiImageService']
