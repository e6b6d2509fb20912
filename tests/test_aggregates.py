"""Tests for the BOM aggregate."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from bomcore.domain.shared.exceptions import (
    DuplicateComponentException,
    EntityNotFoundException,
    StructuralException,
    ValidationException,
)
from bomcore.domain.shared.value_objects import BOMItemId

from tests.factories import CREATED_AT, make_bom, make_item


class TestBOMInvariants:

    def test_version_required(self):
        with pytest.raises(ValidationException):
            make_bom(version=" ")

    def test_duplicate_component_on_same_level_rejected(self):
        items = [make_item("i1", "A"), make_item("i2", "A", sequence=2)]
        with pytest.raises(DuplicateComponentException) as exc_info:
            make_bom(items=items)
        assert exc_info.value.code == "DUPLICATE_BOM_ITEM"

    def test_same_component_on_different_levels_allowed(self):
        items = [make_item("i1", "A"), make_item("i2", "B", parent="i1"),
                 make_item("i3", "A", parent="i2", level=2)]
        assert len(make_bom(items=items).items) == 3

    def test_unknown_parent_rejected(self):
        with pytest.raises(StructuralException) as exc_info:
            make_bom(items=[make_item("i1", "A", parent="missing")])
        assert exc_info.value.code == "INVALID_PARENT"

    def test_parent_must_be_one_level_up(self):
        items = [make_item("i1", "A"), make_item("i2", "B", parent="i1", level=2)]
        with pytest.raises(StructuralException) as exc_info:
            make_bom(items=items)
        assert exc_info.value.code == "INCORRECT_LEVEL"

    def test_items_must_belong_to_bom(self):
        with pytest.raises(ValidationException) as exc_info:
            make_bom(items=[make_item("i1", "A", bom_id="OTHER")])
        assert exc_info.value.field == "bom_id"

    def test_effective_date_not_after_creation(self):
        with pytest.raises(ValidationException):
            make_bom(effective_date=CREATED_AT + timedelta(days=1))


class TestBOMNavigation:

    @pytest.fixture
    def bom(self, sample_items):
        return make_bom(items=sample_items)

    def test_children_of_root(self, bom):
        assert {str(item.id) for item in bom.children_of(None)} == {"i-frame", "i-motor"}

    def test_descendants_in_pre_order(self, bom):
        descendants = bom.descendants_of(BOMItemId("i-frame"))
        assert [str(item.id) for item in descendants] == ["i-bolt", "i-plate"]

    def test_expand_to_level(self, bom):
        assert len(bom.expand_to_level(0)) == 2
        with pytest.raises(ValidationException):
            bom.expand_to_level(-1)

    def test_next_sequence_per_sibling_group(self, bom):
        assert bom.next_sequence(None) == 3
        assert bom.next_sequence(BOMItemId("i-motor")) == 2
        assert bom.next_sequence(BOMItemId("i-wire")) == 1

    def test_get_item_missing(self, bom):
        with pytest.raises(EntityNotFoundException):
            bom.get_item(BOMItemId("nope"))

    def test_total_cost_is_flat(self, bom):
        assert bom.total_cost() == Decimal("1792.00")
        assert bom.max_level == 1


class TestBOMCommands:

    def test_add_item_returns_new_instance(self, sample_items):
        bom = make_bom(items=sample_items)
        item = make_item("i-new", "SCREW", parent="i-motor", sequence=2)
        updated = bom.add_item(item, "bob")

        assert len(bom.items) == 5
        assert len(updated.items) == 6
        assert updated.audit.updated_by == "bob"

    def test_add_duplicate_rejected(self, sample_items):
        bom = make_bom(items=sample_items)
        with pytest.raises(DuplicateComponentException):
            bom.add_item(make_item("i-new", "BOLT", parent="i-motor"))

    def test_add_existing_id_rejected(self, sample_items):
        bom = make_bom(items=sample_items)
        with pytest.raises(ValidationException):
            bom.add_item(make_item("i-bolt", "SCREW"))

    def test_remove_items(self, sample_items):
        bom = make_bom(items=sample_items)
        updated = bom.remove_items([BOMItemId("i-motor"), BOMItemId("i-wire")], "bob")
        assert {str(item.id) for item in updated.items} == {"i-frame", "i-bolt", "i-plate"}

    def test_remove_parent_only_breaks_structure(self, sample_items):
        bom = make_bom(items=sample_items)
        with pytest.raises(StructuralException):
            bom.remove_items([BOMItemId("i-motor")])

    def test_replace_item(self, sample_items):
        bom = make_bom(items=sample_items)
        bolt = bom.get_item(BOMItemId("i-bolt"))
        updated = bom.replace_item(bolt.replace(quantity=Decimal("10")))
        assert updated.get_item(BOMItemId("i-bolt")).quantity == Decimal("10")

    def test_inactive_window(self):
        bom = make_bom(expiry_date=CREATED_AT + timedelta(days=1))
        assert bom.is_currently_active(CREATED_AT)
        assert not bom.is_currently_active(CREATED_AT + timedelta(days=2))
        assert not make_bom(is_active=False).is_currently_active(CREATED_AT)
