"""Tests for the Celery BOM tasks, called synchronously."""
from __future__ import annotations

import asyncio

from bomcore.application.tasks.bom_tasks import (
    compare_bom_revisions,
    find_structure_issues,
    validate_bom_structure,
)
from bomcore.domain.shared.value_objects import BOMId, BOMItemId, ComponentId

from tests.factories import catalog_of_items, component, make_bom, make_item


def _seed(registry, *boms):
    for bom in boms:
        asyncio.run(registry.boms.save(bom))
        for component_id in catalog_of_items(bom.items):
            registry.catalog.add(component(str(component_id)))


def _issue_types(items, product_id="PRODUCT"):
    return [issue["type"] for issue in find_structure_issues(BOMId("BOM-1"), ComponentId(product_id), items)]


class TestFindStructureIssues:

    def test_clean_structure(self, sample_items):
        assert _issue_types(sample_items) == []

    def test_self_reference(self):
        assert _issue_types([make_item("i1", "PRODUCT")]) == ["self_reference"]

    def test_missing_parent(self):
        assert _issue_types([make_item("i1", "A", parent="ghost")]) == ["invalid_parent"]

    def test_parent_in_another_bom(self):
        items = [make_item("p", "A", bom_id="OTHER"), make_item("c", "B", parent="p")]
        assert "invalid_parent" in _issue_types(items)

    def test_incorrect_level(self):
        items = [make_item("p", "A"), make_item("c", "B", parent="p", level=2)]
        assert _issue_types(items) == ["incorrect_level"]

    def test_parent_chain_loop(self):
        items = [make_item("a", "A", parent="b"), make_item("b", "B", parent="a")]
        issues = find_structure_issues(BOMId("BOM-1"), ComponentId("PRODUCT"), items)
        loops = [issue for issue in issues if issue["type"] == "circular_reference"]
        assert {issue["item_id"] for issue in loops} == {"a", "b"}

    def test_component_repeated_along_chain(self):
        items = [
            make_item("x1", "X"),
            make_item("y", "Y", parent="x1"),
            make_item("x2", "X", parent="y", level=2),
        ]
        issues = find_structure_issues(BOMId("BOM-1"), ComponentId("PRODUCT"), items)
        assert [(issue["type"], issue["item_id"]) for issue in issues] == [("circular_reference", "x2")]


class TestValidateBOMStructureTask:

    def test_valid_bom(self, registry, sample_items):
        _seed(registry, make_bom("BOM-1", "PRODUCT", sample_items))

        result = validate_bom_structure("BOM-1")

        assert result == {
            'bom_id': "BOM-1",
            'version': "1.0",
            'items_count': 5,
            'valid': True,
            'issues': [],
        }

    def test_missing_bom(self, registry):
        assert validate_bom_structure("NOPE") == {'error': 'BOM not found'}

    def test_invalid_id_returns_error_code(self, registry):
        result = validate_bom_structure("")
        assert result['code'] == "VALIDATION_ERROR"
        assert result['details']['field'] == "bom_id"


class TestCompareBOMRevisionsTask:

    def test_serialised_comparison(self, registry, sample_items):
        target = [
            item.replace(id=BOMItemId(f"t-{item.id}"), bom_id=BOMId("BOM-2"),
                         parent_item_id=BOMItemId(f"t-{item.parent_item_id}") if item.parent_item_id else None)
            for item in sample_items
            if str(item.id) != "i-bolt"
        ]
        _seed(registry,
              make_bom("BOM-1", "PRODUCT", sample_items),
              make_bom("BOM-2", "PRODUCT", target, version="2.0"))

        result = compare_bom_revisions("BOM-1", "BOM-2", requested_by="alice")

        assert result['source_bom_id'] == "BOM-1"
        assert result['target_bom_id'] == "BOM-2"
        assert result['statistics']['removed_count'] == 1
        assert result['statistics']['cost_difference'] == "-2.00"
        assert len(registry.history.events) == 1

    def test_options_are_parsed(self, registry, sample_items):
        target = [
            make_item("t-motor", "MOTOR", bom_id="BOM-2", unit_cost="1300", is_optional=True),
        ]
        _seed(registry,
              make_bom("BOM-1", "PRODUCT", [make_item("i-motor", "MOTOR", unit_cost="1200", is_optional=True)]),
              make_bom("BOM-2", "PRODUCT", target, version="2.0"))

        result = compare_bom_revisions("BOM-1", "BOM-2", options={"ignore_optional_items": True})

        assert result['differences'] == []

    def test_same_bom_returns_error(self, registry, sample_items):
        _seed(registry, make_bom("BOM-1", "PRODUCT", sample_items))
        result = compare_bom_revisions("BOM-1", "BOM-1")
        assert result['code'] == "VALIDATION_ERROR"

    def test_missing_revision_returns_error(self, registry, sample_items):
        _seed(registry, make_bom("BOM-1", "PRODUCT", sample_items))
        result = compare_bom_revisions("BOM-1", "BOM-9")
        assert result['code'] == "ENTITY_NOT_FOUND"
        assert result['details'] == {"entity_type": "BOM", "entity_id": "BOM-9"}

    def test_unknown_option_returns_error(self, registry):
        result = compare_bom_revisions("BOM-1", "BOM-2", options={"colour": "red"})
        assert result['code'] == "VALIDATION_ERROR"
