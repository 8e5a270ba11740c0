"""Ports - interfaces for external dependencies (Dependency Inversion)."""

from .image_service import EditRequest, ImageEditService
from .event_publisher import EventPublisher, ProcessingEvent, SimpleEventPublisher

__all__ = [
    'EditRequest',
    'ImageEditService',
    'EventPublisher',
    'ProcessingEvent',
    'SimpleEventPublisher',
]
