"""Application layer - use cases and orchestration."""

from .services.asset_registry import AssetRegistry
from .services.orchestrator import ProcessingOrchestrator
from .services.session import EditingSession

__all__ = ['AssetRegistry', 'ProcessingOrchestrator', 'EditingSession']
