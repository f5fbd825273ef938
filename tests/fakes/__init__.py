"""In-memory fake implementations for testing.

This module provides fake implementations of releasegate protocols for use
in unit and integration tests. Fakes are preferred over mocks because they:

1. Implement real protocol contracts, catching interface mismatches at test time
2. Provide deterministic, predictable behavior without call-order dependencies
3. Enable behavior-based testing (assert outputs/state) over interaction testing

Available fakes:
- Step / ScriptedRunner: ExternalRunner replaying scripted outcomes
- FakeNotificationSink: Records (and optionally fails) notify calls
- FakeEventSink: Captures PipelineEventSink events in order
- FakeCommandRunner: Deterministic command execution with fail-closed semantics

Usage:
    from tests.fakes import ScriptedRunner, Step

    runner = ScriptedRunner(Step(StageStatus.ERROR), Step())
"""

from tests.fakes.command_runner import FakeCommandRunner
from tests.fakes.runners import ScriptedRunner, Step, scripted_runners
from tests.fakes.sinks import FakeEventSink, FakeNotificationSink

__all__ = [
    "FakeCommandRunner",
    "FakeEventSink",
    "FakeNotificationSink",
    "ScriptedRunner",
    "Step",
    "scripted_runners",
]
