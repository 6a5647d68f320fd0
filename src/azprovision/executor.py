"""Dependency graph executor.

One coordinating thread drives the graph; remote calls run on a small
ThreadPoolExecutor. The coordinator submits every ready step, waits for the
first completion, records it and submits whatever became ready. Independent
branches (storage account / vnet, subnet lookup / public IP, image lookup /
NIC fetch) therefore overlap, and a step never starts before all of its
dependencies have succeeded.

Failure policy:
- The first failure stops scheduling; not-yet-started steps never run
- Steps already in flight are allowed to finish; their results are recorded
  but the run is failed regardless
- Nothing is retried and nothing is rolled back

Timeout policy:
- When the overall deadline passes, execute returns without waiting for
  in-flight calls. Queued steps are cancelled; calls already running are
  allowed to finish in the background. Their results are ignored and nothing is deleted. The worker
  threads are joined at interpreter exit, so a command line run still ends
  only after those calls return
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any

from azprovision.errors import (
    DependencyError,
    ProviderError,
    ProvisioningError,
    ProvisioningTimeout,
)
from azprovision.graph import DependencyGraph, Step, StepResult, StepStatus
from azprovision.progress import ProgressReporter

logger = logging.getLogger(__name__)


class ExecutionReport:
    """Outcome of executing a graph.

    Attributes:
        results: Step id to StepResult
        transitions: Every state change in the order the coordinator saw it
        timed_out: True if the deadline passed before the graph settled
    """

    def __init__(self, graph: DependencyGraph, timeout: float | None = None):
        self.graph = graph
        self.timeout = timeout
        self.results: dict[str, StepResult] = {sid: StepResult(sid) for sid in graph.step_ids}
        self.transitions: list[tuple[str, StepStatus]] = []
        self.timed_out = False
        self._first_failure: str | None = None

    def record(self, step_id: str, status: StepStatus, payload: Any = None) -> None:
        result = self.results[step_id]
        if status == StepStatus.RUNNING:
            result.mark_running()
        elif status == StepStatus.SUCCEEDED:
            result.mark_succeeded(payload)
        else:
            result.mark_failed(payload)
            if self._first_failure is None:
                self._first_failure = step_id
        self.transitions.append((step_id, status))

    @property
    def failed_step(self) -> str | None:
        """Id of the first step that failed, if any."""
        return self._first_failure

    @property
    def succeeded(self) -> bool:
        return all(r.succeeded for r in self.results.values())

    @property
    def pending_steps(self) -> list[str]:
        """Steps that never started."""
        return [sid for sid in self.graph.step_ids if self.results[sid].status == StepStatus.PENDING]

    @property
    def running_steps(self) -> list[str]:
        return [sid for sid in self.graph.step_ids if self.results[sid].status == StepStatus.RUNNING]

    @property
    def blocked_steps(self) -> list[str]:
        """Never-started steps downstream of the first failure."""
        if self._first_failure is None:
            return []
        pending = set(self.pending_steps)
        return [sid for sid in self.graph.descendants(self._first_failure) if sid in pending]

    def output(self, step_id: str) -> Any:
        """Output of a succeeded step."""
        result = self.results[step_id]
        if not result.succeeded:
            raise KeyError(f"step '{step_id}' has no output (status: {result.status.value})")
        return result.output

    def started_after(self, step_id: str, dependency_id: str) -> bool:
        """True if ``step_id`` started only after ``dependency_id`` succeeded."""
        try:
            started = self.transitions.index((step_id, StepStatus.RUNNING))
            finished = self.transitions.index((dependency_id, StepStatus.SUCCEEDED))
        except ValueError:
            return False
        return finished < started

    def raise_for_failure(self) -> None:
        """Raise the error describing why the run failed, if it did.

        Raises:
            DependencyError: First failure left downstream steps unexecuted
            ProviderError: First failure had nothing downstream left to run
            ProvisioningTimeout: Deadline passed with no step failure
        """
        if self._first_failure is not None:
            error = self.results[self._first_failure].error
            blocked = self.blocked_steps
            if isinstance(error, ProviderError) and blocked:
                raise DependencyError(error, blocked) from error
            raise error  # type: ignore[misc]

        if self.timed_out:
            raise ProvisioningTimeout(self.timeout or 0.0, self.running_steps)


class GraphExecutor:
    """Execute a DependencyGraph with bounded fan-out.

    Example:
        executor = GraphExecutor(max_workers=4, timeout=1800)
        report = executor.execute(graph)
        report.raise_for_failure()
        vm = report.output("virtual_machine")
    """

    def __init__(
        self,
        max_workers: int = 4,
        timeout: float | None = None,
        progress: ProgressReporter | None = None,
    ):
        """Initialize executor.

        Args:
            max_workers: Maximum concurrent remote calls
            timeout: Overall deadline in seconds (None: no deadline)
            progress: Reporter for step announcements

        Raises:
            ValueError: If max_workers or timeout is not positive
        """
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")

        self.max_workers = max_workers
        self.timeout = timeout
        self.progress = progress or ProgressReporter(quiet=True)

    def execute(self, graph: DependencyGraph) -> ExecutionReport:
        """Run every step of the graph, respecting dependencies.

        Never raises for step failures; inspect the report or call
        ``report.raise_for_failure()``.
        """
        report = ExecutionReport(graph, self.timeout)
        deadline = time.monotonic() + self.timeout if self.timeout else None
        in_flight: dict[Future, Step] = {}
        abandon = False

        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="azprovision")
        try:
            self._submit_ready(pool, graph, report, in_flight)

            while in_flight:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    done = set()
                else:
                    done, _ = wait(in_flight, timeout=remaining, return_when=FIRST_COMPLETED)

                if not done:
                    report.timed_out = True
                    abandon = True
                    logger.error(
                        f"Provisioning deadline of {self.timeout}s passed; "
                        f"not waiting for: {', '.join(s.id for s in in_flight.values())}"
                    )
                    break

                for future in done:
                    step = in_flight.pop(future)
                    self._collect(step, future, report)

                if report.failed_step is None:
                    self._submit_ready(pool, graph, report, in_flight)
        except BaseException:
            abandon = True
            raise
        finally:
            pool.shutdown(wait=not abandon, cancel_futures=abandon)

        if report.failed_step is not None and report.pending_steps:
            logger.warning(
                f"Not executed after failure of '{report.failed_step}': "
                f"{', '.join(report.pending_steps)}"
            )
        return report

    def _submit_ready(
        self,
        pool: ThreadPoolExecutor,
        graph: DependencyGraph,
        report: ExecutionReport,
        in_flight: dict[Future, Step],
    ) -> None:
        for step in graph.ready_steps(report.results):
            inputs = {dep: report.results[dep].output for dep in step.dependencies}
            report.record(step.id, StepStatus.RUNNING)
            in_flight[pool.submit(self._run_step, step, inputs)] = step

    def _run_step(self, step: Step, inputs: Mapping[str, Any]) -> Any:
        self.progress.step_started(step)
        return step.run(inputs)

    def _collect(self, step: Step, future: Future, report: ExecutionReport) -> None:
        result = report.results[step.id]
        discarded = report.failed_step is not None
        try:
            output = future.result()
        except ProvisioningError as e:
            report.record(step.id, StepStatus.FAILED, e)
            self.progress.step_failed(step, e)
            return
        except Exception as e:
            logger.debug(f"Unexpected error in step '{step.id}'", exc_info=True)
            error = ProviderError.from_exception(step.id, e)
            error.__cause__ = e
            report.record(step.id, StepStatus.FAILED, error)
            self.progress.step_failed(step, error)
            return

        report.record(step.id, StepStatus.SUCCEEDED, output)
        self.progress.step_succeeded(step, result.duration_seconds)
        if discarded:
            logger.info(f"Step '{step.id}' finished after the run failed; result discarded")


__all__ = ["ExecutionReport", "GraphExecutor"]
