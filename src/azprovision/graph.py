"""Dependency graph of provisioning steps.

A Step is one remote call. Edges mean "requires the output of". The graph is
validated at construction: step ids are unique, every dependency names a step
in the graph, and there are no cycles.

Each step moves through a small state machine tracked by StepResult:

    PENDING -> RUNNING -> SUCCEEDED(output)
                       -> FAILED(error)

Terminal states are final. A step is ready only when every dependency is
SUCCEEDED.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from azprovision.errors import GraphError, ProvisioningError
from azprovision.models import ResourceKind

StepFunction = Callable[[Mapping[str, Any]], Any]


class StepStatus(Enum):
    """Lifecycle of a single step."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SUCCEEDED, StepStatus.FAILED)


class InvalidTransition(GraphError):
    """Raised on a state change the step lifecycle does not allow."""


_ALLOWED_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.RUNNING},
    StepStatus.RUNNING: {StepStatus.SUCCEEDED, StepStatus.FAILED},
    StepStatus.SUCCEEDED: set(),
    StepStatus.FAILED: set(),
}


@dataclass(frozen=True)
class Step:
    """One node of the graph.

    Attributes:
        id: Unique step id
        kind: Kind of resource the step creates or reads
        label: Human label for progress output ("Creating vnet")
        run: Callable receiving a mapping of dependency id to output
        dependencies: Ids of steps whose output this step requires
        number: Display number for progress output
        resource_name: Generated resource name shown in progress output
    """

    id: str
    kind: ResourceKind
    label: str
    run: StepFunction = field(repr=False, compare=False)
    dependencies: tuple[str, ...] = ()
    number: int = 0
    resource_name: str = ""


@dataclass
class StepResult:
    """Runtime outcome of one step.

    Mutable while the run is in progress; only the coordinating thread
    changes it.
    """

    step_id: str
    status: StepStatus = StepStatus.PENDING
    output: Any = None
    error: ProvisioningError | None = None
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCEEDED

    def _transition(self, new_status: StepStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"step '{self.step_id}' cannot move from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def mark_running(self) -> None:
        self._transition(StepStatus.RUNNING)
        self.started_at = time.monotonic()

    def mark_succeeded(self, output: Any) -> None:
        self._transition(StepStatus.SUCCEEDED)
        self.output = output
        self.finished_at = time.monotonic()

    def mark_failed(self, error: ProvisioningError) -> None:
        self._transition(StepStatus.FAILED)
        self.error = error
        self.finished_at = time.monotonic()


class DependencyGraph:
    """Validated, acyclic set of steps."""

    def __init__(self, steps: Iterable[Step]):
        self._steps: dict[str, Step] = {}
        for step in steps:
            if step.id in self._steps:
                raise GraphError(f"duplicate step id: {step.id}")
            self._steps[step.id] = step

        for step in self._steps.values():
            unknown = [dep for dep in step.dependencies if dep not in self._steps]
            if unknown:
                raise GraphError(f"step '{step.id}' depends on unknown steps: {unknown}")

        self._order = self._topological_order()

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __iter__(self):
        return iter(self._order)

    def get(self, step_id: str) -> Step:
        try:
            return self._steps[step_id]
        except KeyError:
            raise GraphError(f"unknown step: {step_id}") from None

    @property
    def step_ids(self) -> list[str]:
        """Step ids in a valid execution order."""
        return [step.id for step in self._order]

    def dependents(self, step_id: str) -> list[str]:
        """Steps that directly require ``step_id``."""
        return [s.id for s in self._order if step_id in s.dependencies]

    def descendants(self, step_id: str) -> list[str]:
        """All steps that transitively require ``step_id``, in execution order."""
        reached: set[str] = set()
        frontier = [step_id]
        while frontier:
            current = frontier.pop()
            for dependent in self.dependents(current):
                if dependent not in reached:
                    reached.add(dependent)
                    frontier.append(dependent)
        return [s.id for s in self._order if s.id in reached]

    def ready_steps(self, results: Mapping[str, StepResult]) -> list[Step]:
        """Pending steps whose dependencies have all succeeded."""
        ready = []
        for step in self._order:
            if results[step.id].status != StepStatus.PENDING:
                continue
            if all(results[dep].succeeded for dep in step.dependencies):
                ready.append(step)
        return ready

    def _topological_order(self) -> list[Step]:
        # Kahn's algorithm, stable with respect to insertion order
        remaining = {sid: len(step.dependencies) for sid, step in self._steps.items()}
        order: list[Step] = []
        queue = [sid for sid, count in remaining.items() if count == 0]
        while queue:
            sid = queue.pop(0)
            order.append(self._steps[sid])
            for other in self._steps.values():
                if sid in other.dependencies:
                    remaining[other.id] -= other.dependencies.count(sid)
                    if remaining[other.id] == 0:
                        queue.append(other.id)

        if len(order) != len(self._steps):
            cyclic = sorted(sid for sid in self._steps if sid not in {s.id for s in order})
            raise GraphError(f"dependency cycle among steps: {cyclic}")
        return order


__all__ = [
    "DependencyGraph",
    "InvalidTransition",
    "Step",
    "StepFunction",
    "StepResult",
    "StepStatus",
]
