"""I/O utilities for releasegate.

This package contains:
- config: ReleasegateConfig dataclass for environment configuration
- event_sink: PipelineEventSink implementations
- run_metadata: Run records and per-run debug logging
- log_output/: Console logging helpers
"""

from releasegate.infra.io.config import ConfigurationError, ReleasegateConfig
from releasegate.infra.io.event_sink import (
    BaseEventSink,
    ConsoleEventSink,
    NullEventSink,
)

__all__ = [
    "BaseEventSink",
    "ConfigurationError",
    "ConsoleEventSink",
    "NullEventSink",
    "ReleasegateConfig",
]
