"""Photo Retoucher - batch editing of architectural photos with a generative image model."""

__version__ = "1.0.0"

from .application import AssetRegistry, EditingSession, ProcessingOrchestrator
from .domain import AssetStatus, ImageAsset, ImageSource, ProcessingOptions, ProjectSettings
from .exceptions import (
    RetoucherError,
    ConfigurationError,
    ValidationError,
    AssetNotFoundError,
    InvalidTransitionError,
    InvalidStateError,
    ServiceError,
    TransientServiceError,
    TerminalServiceError,
    CredentialError,
    EmptyResponseError,
    GeometrySyncError,
)
from .utils.env import setup_logging
from .viewport import ViewportController

__all__ = [
    '__version__',
    'AssetRegistry',
    'EditingSession',
    'ProcessingOrchestrator',
    'AssetStatus',
    'ImageAsset',
    'ImageSource',
    'ProcessingOptions',
    'ProjectSettings',
    'ViewportController',
    'setup_logging',
    # Exceptions
    'RetoucherError',
    'ConfigurationError',
    'ValidationError',
    'AssetNotFoundError',
    'InvalidTransitionError',
    'InvalidStateError',
    'ServiceError',
    'TransientServiceError',
    'TerminalServiceError',
    'CredentialError',
    'EmptyResponseError',
    'GeometrySyncError',
]
