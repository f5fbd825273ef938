"""NotificationSink implementations.

Each sink receives the terminal RunState once per run and renders the
run report for its channel. Sinks raise on delivery failure; the
orchestrator logs the failure and never retries.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from releasegate.domain.report import build_run_report
from releasegate.infra.io.log_output.console import RUN_STYLES, Colors, log
from releasegate.infra.io.run_metadata import save_run_record

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from releasegate.core.protocols import NotificationSink
    from releasegate.domain.run_state import RunState

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """One or more sinks of a CompositeNotificationSink failed."""

    def __init__(self, failures: list[tuple[str, Exception]]) -> None:
        self.failures = failures
        details = "; ".join(f"{name}: {error}" for name, error in failures)
        super().__init__(f"{len(failures)} notification sink(s) failed: {details}")


class ConsoleNotificationSink:
    """Prints the final report to the console."""

    async def notify(self, run_state: RunState) -> None:
        report = build_run_report(run_state)
        _, color = RUN_STYLES[run_state.status]
        lines = report.to_text().splitlines()
        log("◆", lines[0], color + Colors.BOLD, run_id=report.run_id)
        for line in lines[1:]:
            log(" ", line, Colors.MUTED, run_id=report.run_id)


class WebhookNotificationSink:
    """POSTs the report as JSON to a chat/webhook endpoint.

    The payload carries a ``text`` field (rendered report) understood by
    Slack-style incoming webhooks, plus the structured ``report``.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def payload(self, run_state: RunState) -> dict[str, Any]:
        report = build_run_report(run_state)
        return {"text": report.to_text(), "report": report.to_dict()}

    async def notify(self, run_state: RunState) -> None:
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self._transport
        ) as client:
            response = await client.post(self.url, json=self.payload(run_state))
            response.raise_for_status()
        logger.info("Delivered report for run %s to webhook", run_state.run_id)


class RunRecordSink:
    """Writes the report as JSON into the runs directory (read by `logs`)."""

    def __init__(self, runs_dir: Path) -> None:
        self.runs_dir = runs_dir
        self.last_path: Path | None = None

    async def notify(self, run_state: RunState) -> None:
        self.last_path = save_run_record(self.runs_dir, build_run_report(run_state))
        logger.debug("Run record written to %s", self.last_path)


class CompositeNotificationSink:
    """Delivers to every child sink exactly once, in order.

    A failing sink does not prevent delivery to the others. After all
    sinks ran, failures are re-raised together as NotificationDeliveryError.
    """

    def __init__(self, sinks: Sequence[NotificationSink]) -> None:
        self.sinks = list(sinks)

    async def notify(self, run_state: RunState) -> None:
        failures: list[tuple[str, Exception]] = []
        for sink in self.sinks:
            name = type(sink).__name__
            try:
                await sink.notify(run_state)
            except Exception as e:
                logger.warning("Notification sink %s failed: %s", name, e)
                failures.append((name, e))
        if failures:
            raise NotificationDeliveryError(failures)
