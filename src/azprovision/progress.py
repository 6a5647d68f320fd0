"""
Progress Display Module

Operator-visible progress for a provisioning run. Each step announces itself
when it begins, with its number, label and generated resource name:

    1.Creating resource group: testrg1234

Output is advisory and not part of the data contract. Worker threads report
concurrently, so printing is serialized with a lock.

Security Requirements:
- No credential exposure in output (messages pass through LogSanitizer)
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum

from rich.console import Console

from azprovision.graph import Step
from azprovision.log_sanitizer import LogSanitizer

logger = logging.getLogger(__name__)


class ProgressStage(Enum):
    """Progress stage indicators."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProgressUpdate:
    """Progress update information."""

    stage: ProgressStage
    message: str
    timestamp: float
    step_id: str | None = None


class ProgressReporter:
    """
    Thread-safe progress reporter for step execution.

    Features:
    - Step start / completion / failure updates
    - Rich console output (can be silenced with quiet=True)
    - Recorded history for inspection
    """

    STYLES = {
        ProgressStage.STARTED: ("►", "cyan"),
        ProgressStage.COMPLETED: ("✓", "green"),
        ProgressStage.FAILED: ("✗", "red"),
    }

    def __init__(self, console: Console | None = None, quiet: bool = False):
        """
        Initialize progress reporter.

        Args:
            console: Rich console to print to (default: stderr console)
            quiet: Record and log updates without printing them
        """
        self.console = console or Console(stderr=True)
        self.quiet = quiet
        self._lock = threading.Lock()
        self._updates: list[ProgressUpdate] = []

    @staticmethod
    def format_step(step: Step) -> str:
        """Announcement line for a step, e.g. ``3.Creating vnet: testvnet42``."""
        if step.resource_name:
            return f"{step.number}.{step.label}: {step.resource_name}"
        return f"{step.number}.{step.label}"

    def step_started(self, step: Step) -> None:
        self._report(ProgressStage.STARTED, self.format_step(step), step.id)

    def step_succeeded(self, step: Step, duration_seconds: float) -> None:
        message = f"{self.format_step(step)} ({duration_seconds:.1f}s)"
        self._report(ProgressStage.COMPLETED, message, step.id)

    def step_failed(self, step: Step, error: BaseException) -> None:
        message = f"{self.format_step(step)} failed: {error}"
        self._report(ProgressStage.FAILED, message, step.id)

    def get_updates(self) -> list[ProgressUpdate]:
        """All recorded updates, oldest first."""
        with self._lock:
            return self._updates.copy()

    def _report(self, stage: ProgressStage, message: str, step_id: str | None) -> None:
        message = LogSanitizer.sanitize(message)
        update = ProgressUpdate(
            stage=stage, message=message, timestamp=time.time(), step_id=step_id
        )
        symbol, color = self.STYLES[stage]

        with self._lock:
            self._updates.append(update)
            if stage == ProgressStage.FAILED:
                logger.error(message)
            else:
                logger.info(message)
            if not self.quiet:
                # markup=False: resource names and provider messages may contain brackets
                self.console.print(f"{symbol} ", style=color, end="")
                self.console.print(message, markup=False, highlight=False)
