"""Tests for circular reference detection."""
from __future__ import annotations

import pytest

from bomcore import ProductGraph, has_circular_reference, would_create_cycle
from bomcore.domain.bom.cycles import CycleDetector
from bomcore.domain.shared.value_objects import BOMId, ComponentId

from tests.factories import make_bom, make_item


def _graph(**edges):
    return ProductGraph.from_structures({
        ComponentId(product): [ComponentId(ingredient) for ingredient in ingredients]
        for product, ingredients in edges.items()
    })


A, B, C, D = (ComponentId(name) for name in "ABCD")


class TestHasCircularReference:

    def test_bom_listing_its_own_product(self):
        bom = make_bom(product_id="A", items=[make_item("i1", "B"), make_item("i2", "A", parent="i1")])
        assert has_circular_reference(bom)

    def test_clean_bom(self):
        bom = make_bom(product_id="A", items=[make_item("i1", "B")])
        assert not has_circular_reference(bom)


class TestWouldCreateCycle:

    def test_two_node_cycle(self):
        # A already contains B; adding A under B closes A -> B -> A
        graph = _graph(A=["B"])
        assert would_create_cycle(B, A, graph)

    def test_no_path_back(self):
        graph = _graph(A=["B", "C"])
        assert not would_create_cycle(A, D, graph)
        assert not would_create_cycle(B, C, graph)

    def test_self_reference(self):
        assert would_create_cycle(A, A, ProductGraph())

    def test_longer_chain(self):
        graph = _graph(A=["B"], B=["C"], C=["D"])
        assert would_create_cycle(D, A, graph)
        assert not would_create_cycle(A, D, graph)

    def test_diamond_is_not_a_cycle(self):
        # Shared sub-component reached through two paths
        graph = _graph(A=["B", "C"], B=["D"], C=["D"])
        assert not would_create_cycle(ComponentId("E"), A, graph)

    def test_existing_unrelated_cycle_terminates(self):
        graph = _graph(B=["C"], C=["B"])
        assert would_create_cycle(A, B, graph) is True

    def test_lookup_failure_fails_closed(self):
        def lookup(product_id):
            raise LookupError("store unavailable")

        assert would_create_cycle(A, B, lookup)

    def test_depth_exceeded_fails_closed(self):
        chain = {f"P{n}": [f"P{n + 1}"] for n in range(10)}
        graph = _graph(**chain)
        assert not would_create_cycle(A, ComponentId("P0"), graph, max_depth=20)
        assert would_create_cycle(A, ComponentId("P0"), graph, max_depth=5)

    def test_callable_lookup(self):
        edges = {A: [B], B: []}
        assert would_create_cycle(B, A, lambda product_id: edges.get(product_id, []))


class TestCycleDetector:

    def test_result_carries_path(self):
        graph = _graph(A=["B"], B=["C"])
        result = CycleDetector().check_component_addition(C, A, graph)
        assert result
        assert result.circular_path == (C, A, B, C)
        assert "C -> A -> B -> C" in result.message

    def test_negative_result(self):
        result = CycleDetector().check_component_addition(A, B, ProductGraph())
        assert not result
        assert result.circular_path == ()

    def test_bom_structure_repeated_component_on_path(self):
        items = [make_item("i1", "B"), make_item("i2", "C", parent="i1"),
                 make_item("i3", "B", parent="i2", level=2)]
        result = CycleDetector().check_bom_structure(make_bom(product_id="A", items=items))
        assert result.has_circular_reference
        assert result.circular_path == (A, B, C, B)

    def test_bom_structure_clean(self, sample_items):
        result = CycleDetector().check_bom_structure(make_bom(items=sample_items))
        assert not result.has_circular_reference


class TestProductGraph:

    def test_from_where_used(self):
        items = [make_item("i1", "B", bom_id="BOM-A"), make_item("i2", "B", bom_id="BOM-C")]
        graph = ProductGraph.from_where_used(
            items, {BOMId("BOM-A"): A, BOMId("BOM-C"): C}
        )
        assert graph.ingredients_of(A) == [B]
        assert graph.ingredients_of(C) == [B]
        assert A in graph and B not in graph

    def test_from_where_used_unknown_bom(self):
        with pytest.raises(KeyError):
            ProductGraph.from_where_used([make_item("i1", "B", bom_id="X")], {})

    def test_from_boms(self, sample_items):
        graph = ProductGraph.from_boms([make_bom(items=sample_items)])
        assert len(graph.ingredients_of(ComponentId("PRODUCT"))) == 5

    def test_edges_deduplicated(self):
        graph = ProductGraph()
        graph.add_edge(A, B)
        graph.add_edge(A, B)
        assert graph.ingredients_of(A) == [B]
        assert len(graph) == 1
