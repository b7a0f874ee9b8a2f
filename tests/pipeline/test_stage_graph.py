"""
Tests for stagespine.pipeline.graph module.

Covers:
- Registration, duplicates, lookup
- Decorator registration
- validate(): unknown deps and cycles
- resolution_order(): depth-first post-order in declaration order
"""

import pytest

from stagespine.core.errors import DependencyCycleError, DuplicateStageError, UnknownStageError
from stagespine.pipeline.graph import StageDefinition, StageGraph


def stage(key, deps=(), version="1"):
    return StageDefinition(
        key=key,
        version=version,
        deps=deps,
        fingerprint=lambda ctx: None,
        run=lambda ctx: key,
    )


class TestStageDefinition:
    def test_deps_normalized_to_tuple(self):
        definition = stage("b", deps=["a"])
        assert definition.deps == ("a",)

    def test_self_dependency_rejected(self):
        with pytest.raises(DependencyCycleError):
            stage("a", deps=("a",))

    def test_frozen(self):
        definition = stage("a")
        with pytest.raises(AttributeError):
            definition.version = "2"


class TestRegistration:
    def test_register_and_get(self):
        graph = StageGraph([stage("a")])
        assert graph.get("a").key == "a"
        assert "a" in graph
        assert len(graph) == 1
        assert graph.keys == ["a"]

    def test_duplicate_rejected(self):
        graph = StageGraph([stage("a")])
        with pytest.raises(DuplicateStageError):
            graph.register(stage("a"))

    def test_unknown_key(self):
        with pytest.raises(UnknownStageError):
            StageGraph().get("missing")

    def test_decorator_registration(self):
        graph = StageGraph()

        @graph.stage("10-lower", version="2", fingerprint=lambda ctx: ctx.option("text"))
        def lower(ctx):
            """Lower the template."""
            return ctx.option("text").split()

        definition = graph.get("10-lower")
        assert definition.run is lower
        assert definition.version == "2"
        assert definition.description == "Lower the template."


class TestValidate:
    def test_valid_graph(self, counting_graph):
        counting_graph.validate()

    def test_unknown_dependency(self):
        graph = StageGraph([stage("b", deps=("a",))])
        with pytest.raises(UnknownStageError) as exc_info:
            graph.validate()
        assert exc_info.value.stage == "a"

    def test_cycle_detected(self):
        graph = StageGraph([stage("a", deps=("c",)), stage("b", deps=("a",)), stage("c", deps=("b",))])
        with pytest.raises(DependencyCycleError) as exc_info:
            graph.validate()
        assert set(exc_info.value.stages) == {"a", "b", "c"}


class TestResolutionOrder:
    def test_chain(self, counting_graph):
        assert counting_graph.resolution_order("60-emit") == ["10-lower", "20-link", "30-bind", "60-emit"]

    def test_declaration_order_respected(self):
        graph = StageGraph([stage("x"), stage("y"), stage("z", deps=("y", "x"))])
        assert graph.resolution_order("z") == ["y", "x", "z"]

    def test_diamond_visits_shared_dep_once(self):
        graph = StageGraph(
            [stage("a"), stage("b", deps=("a",)), stage("c", deps=("a",)), stage("d", deps=("b", "c"))]
        )
        assert graph.resolution_order("d") == ["a", "b", "c", "d"]

    def test_cycle_in_closure(self):
        graph = StageGraph([stage("a", deps=("b",)), stage("b", deps=("a",))])
        with pytest.raises(DependencyCycleError) as exc_info:
            graph.resolution_order("a")
        assert exc_info.value.stages == ["a", "b"]

    def test_unknown_root(self, counting_graph):
        with pytest.raises(UnknownStageError):
            counting_graph.resolution_order("99-missing")

    def test_deep_chain_has_no_recursion_limit(self):
        stages = [stage("s0")] + [stage(f"s{i}", deps=(f"s{i - 1}",)) for i in range(1, 3000)]
        graph = StageGraph(stages)
        order = graph.resolution_order("s2999")
        assert order[0] == "s0"
        assert len(order) == 3000

    def test_resolved_stages_are_not_descended(self, counting_graph):
        order = counting_graph.resolution_order("60-emit", resolved={"20-link"})
        assert order == ["10-lower", "30-bind", "60-emit"]
        assert counting_graph.resolution_order("30-bind", resolved={"20-link"}) == ["30-bind"]

    def test_resolved_root_is_empty(self, counting_graph):
        assert counting_graph.resolution_order("20-link", resolved={"20-link"}) == []

    def test_topological_order(self):
        graph = StageGraph([stage("b", deps=("a",)), stage("a")])
        assert graph.topological_order() == ["a", "b"]
