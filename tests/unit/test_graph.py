"""Unit tests for the dependency graph and step state machine.

These tests verify:
- Graph validation (duplicate ids, unknown dependencies, cycles)
- Topological ordering and descendant lookup
- Ready-step computation
- StepResult lifecycle transitions
"""

import pytest

from azprovision.errors import GraphError
from azprovision.graph import DependencyGraph, InvalidTransition, Step, StepResult, StepStatus
from azprovision.models import ResourceKind


def make_step(step_id, *dependencies):
    return Step(
        id=step_id,
        kind=ResourceKind.VNET,
        label=f"Creating {step_id}",
        run=lambda deps: step_id,
        dependencies=tuple(dependencies),
    )


@pytest.fixture
def diamond():
    """a -> (b, c) -> d"""
    return DependencyGraph(
        [make_step("a"), make_step("b", "a"), make_step("c", "a"), make_step("d", "b", "c")]
    )


class TestGraphValidation:
    """Test graph construction rejects malformed input."""

    def test_duplicate_id(self):
        with pytest.raises(GraphError, match="duplicate step id: a"):
            DependencyGraph([make_step("a"), make_step("a")])

    def test_unknown_dependency(self):
        with pytest.raises(GraphError, match="unknown steps"):
            DependencyGraph([make_step("a", "missing")])

    def test_cycle(self):
        with pytest.raises(GraphError, match="cycle"):
            DependencyGraph([make_step("a", "c"), make_step("b", "a"), make_step("c", "b")])

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(GraphError, match="cycle"):
            DependencyGraph([make_step("a", "a")])

    def test_empty_graph_is_valid(self):
        assert len(DependencyGraph([])) == 0


class TestGraphQueries:
    """Test ordering and traversal helpers."""

    def test_order_respects_dependencies(self, diamond):
        order = diamond.step_ids
        assert order.index("a") < order.index("b") < order.index("d")
        assert order.index("c") < order.index("d")

    def test_order_is_stable_for_declaration_order(self):
        graph = DependencyGraph([make_step("z"), make_step("y"), make_step("x", "z")])
        assert graph.step_ids == ["z", "y", "x"]

    def test_contains_and_get(self, diamond):
        assert "b" in diamond
        assert "nope" not in diamond
        assert diamond.get("b").dependencies == ("a",)
        with pytest.raises(GraphError, match="unknown step"):
            diamond.get("nope")

    def test_dependents(self, diamond):
        assert diamond.dependents("a") == ["b", "c"]
        assert diamond.dependents("d") == []

    def test_descendants(self, diamond):
        assert diamond.descendants("a") == ["b", "c", "d"]
        assert diamond.descendants("b") == ["d"]

    def test_ready_steps(self, diamond):
        results = {sid: StepResult(sid) for sid in diamond.step_ids}
        assert [s.id for s in diamond.ready_steps(results)] == ["a"]

        results["a"].mark_running()
        assert diamond.ready_steps(results) == []

        results["a"].mark_succeeded("rg")
        assert [s.id for s in diamond.ready_steps(results)] == ["b", "c"]

        results["b"].mark_running()
        results["b"].mark_succeeded("b")
        # d still waits for c
        assert [s.id for s in diamond.ready_steps(results)] == ["c"]

    def test_failed_dependency_never_readies_dependent(self, diamond):
        results = {sid: StepResult(sid) for sid in diamond.step_ids}
        results["a"].mark_running()
        results["a"].mark_failed(GraphError("boom"))
        assert diamond.ready_steps(results) == []


class TestStepResult:
    """Test the PENDING -> RUNNING -> SUCCEEDED/FAILED lifecycle."""

    def test_success_path(self):
        result = StepResult("a")
        result.mark_running()
        result.mark_succeeded("handle")
        assert result.status == StepStatus.SUCCEEDED
        assert result.output == "handle"
        assert result.duration_seconds >= 0
        assert result.status.is_terminal

    def test_failure_path(self):
        result = StepResult("a")
        error = GraphError("boom")
        result.mark_running()
        result.mark_failed(error)
        assert result.status == StepStatus.FAILED
        assert result.error is error
        assert not result.succeeded

    def test_cannot_skip_running(self):
        with pytest.raises(InvalidTransition, match="pending to succeeded"):
            StepResult("a").mark_succeeded("x")

    def test_terminal_states_are_final(self):
        result = StepResult("a")
        result.mark_running()
        result.mark_succeeded("x")
        with pytest.raises(InvalidTransition):
            result.mark_failed(GraphError("late"))
        with pytest.raises(InvalidTransition):
            result.mark_running()

    def test_pending_has_no_duration(self):
        assert StepResult("a").duration_seconds == 0.0
