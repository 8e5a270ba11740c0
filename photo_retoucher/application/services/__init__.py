"""Application services - orchestrate use cases."""

from .asset_registry import AssetRegistry
from .orchestrator import BatchResult, ProcessingOrchestrator, RetryPolicy
from .request_builder import RequestBuilder, TaskPromptBuilder, infer_aspect_ratio
from .session import EditingSession

__all__ = [
    'AssetRegistry',
    'BatchResult',
    'ProcessingOrchestrator',
    'RetryPolicy',
    'RequestBuilder',
    'TaskPromptBuilder',
    'infer_aspect_ratio',
    'EditingSession',
]
