"""releasegate: gated build-and-release pipeline orchestrator."""

from .orchestration.orchestrator import PipelineOrchestrator

__version__ = "0.1.0"
__all__ = ["PipelineOrchestrator", "__version__"]
