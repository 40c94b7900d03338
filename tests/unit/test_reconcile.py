"""Unit tests for applying action records to a grocery list."""

import pytest

from listsmith.models import ActionRecord, GroceryItem, Measurement
from listsmith.reconcile import apply_actions, merge_duplicates

pytestmark = pytest.mark.unit


def names_and_quantities(items):
    return [(item.item, item.quantity) for item in items]


class TestAdd:
    def test_add_to_empty_list(self):
        result = apply_actions([], [{"item": "milk", "quantity": 1, "action": "add"}])
        assert result == [GroceryItem(item="milk", quantity=1, action="add")]

    def test_missing_action_defaults_to_add(self):
        result = apply_actions([], [{"item": "eggs", "quantity": 12}])
        assert result[0].action == "add"
        assert result[0].quantity == 12

    @pytest.mark.parametrize("q1,q2", [(1, 1), (2, 3.5), (0.5, 0.25)])
    def test_add_accumulates(self, q1, q2):
        result = apply_actions(
            [{"item": "apples", "quantity": q1}],
            [{"item": "apples", "quantity": q2, "action": "add"}],
        )
        assert names_and_quantities(result) == [("apples", q1 + q2)]

    def test_add_is_case_insensitive_and_keeps_spelling(self):
        result = apply_actions(
            [GroceryItem(item="Milk", quantity=1)],
            [ActionRecord(item="MILK", quantity=2)],
        )
        assert names_and_quantities(result) == [("Milk", 3)]

    def test_add_replaces_measurement(self):
        current = [
            GroceryItem(
                item="flour", quantity=1, measurement=Measurement(value=500, unit="g")
            )
        ]
        result = apply_actions(
            current,
            [
                ActionRecord(
                    item="flour",
                    quantity=1,
                    measurement=Measurement(value=1, unit="kg", type="weight"),
                )
            ],
        )
        assert result[0].quantity == 2
        assert result[0].measurement == Measurement(value=1, unit="kg", type="weight")

    def test_add_without_measurement_keeps_existing(self):
        measurement = Measurement(value=2, unit="L")
        current = [GroceryItem(item="milk", quantity=1, measurement=measurement)]
        result = apply_actions(current, [ActionRecord(item="milk", quantity=1)])
        assert result[0].measurement == measurement

    def test_does_not_split_semantic_duplicates(self):
        result = apply_actions(
            [GroceryItem(item="tomato sauce", quantity=1)],
            [ActionRecord(item="pasta sauce", quantity=1)],
        )
        assert names_and_quantities(result) == [("tomato sauce", 1), ("pasta sauce", 1)]


class TestModify:
    @pytest.mark.parametrize("q1,q2", [(1, 5), (4, 2), (3, 3)])
    def test_modify_replaces_quantity(self, q1, q2):
        result = apply_actions(
            [{"item": "apples", "quantity": q1}],
            [{"item": "apples", "quantity": q2, "action": "modify"}],
        )
        assert names_and_quantities(result) == [("apples", q2)]

    def test_modify_without_measurement_keeps_existing(self):
        measurement = Measurement(value=250, unit="mL")
        current = [GroceryItem(item="cream", quantity=1, measurement=measurement)]
        result = apply_actions(
            current, [ActionRecord(item="cream", quantity=2, action="modify")]
        )
        assert result[0].quantity == 2
        assert result[0].measurement == measurement

    def test_modify_unknown_item_is_implicit_add(self):
        result = apply_actions(
            [], [ActionRecord(item="tomato", quantity=4, action="modify")]
        )
        assert result == [GroceryItem(item="tomato", quantity=4, action="add")]

    def test_modify_to_zero_prunes_item(self):
        result = apply_actions(
            [{"item": "bread", "quantity": 2}],
            [{"item": "bread", "quantity": 0, "action": "modify"}],
        )
        assert result == []


class TestRemove:
    def test_remove_ignores_quantity(self):
        result = apply_actions(
            [{"item": "cheese", "quantity": 3}],
            [{"item": "Cheese", "quantity": 1, "action": "remove"}],
        )
        assert result == []

    def test_remove_missing_item_is_reported_not_raised(self):
        events = []
        result = apply_actions(
            [{"item": "milk", "quantity": 1}],
            [{"item": "cheese", "quantity": 1, "action": "remove"}],
            on_event=lambda event_type, message: events.append((event_type, message)),
        )
        assert names_and_quantities(result) == [("milk", 1)]
        assert events == [("remove_missing", "Attempted to remove non-existent item: cheese")]


class TestBatchSemantics:
    def test_add_then_remove_nets_out(self):
        actions = [
            {"item": "milk", "quantity": 1, "action": "add"},
            {"item": "milk", "quantity": 0, "action": "remove"},
        ]
        assert apply_actions([], actions) == []

    def test_order_matters(self):
        actions = [
            {"item": "milk", "quantity": 0, "action": "remove"},
            {"item": "milk", "quantity": 1, "action": "add"},
        ]
        assert names_and_quantities(apply_actions([], actions)) == [("milk", 1)]

    def test_mixed_batch(self):
        result = apply_actions(
            [],
            [
                {"item": "milk", "quantity": 1, "action": "add"},
                {"item": "bread", "quantity": 1, "action": "add"},
                {"item": "milk", "quantity": 0, "action": "remove"},
            ],
        )
        assert result == [GroceryItem(item="bread", quantity=1, action="add")]

    def test_input_list_is_not_mutated(self):
        current = [GroceryItem(item="milk", quantity=1)]
        snapshot = [item.model_copy(deep=True) for item in current]

        apply_actions(
            current,
            [
                ActionRecord(item="milk", quantity=5),
                ActionRecord(item="eggs", quantity=6),
            ],
        )

        assert current == snapshot

    def test_negative_quantity_pruned_after_batch(self):
        result = apply_actions(
            [{"item": "water", "quantity": 1}],
            [
                {"item": "water", "quantity": -3, "action": "add"},
                {"item": "juice", "quantity": 1, "action": "add"},
            ],
        )
        assert names_and_quantities(result) == [("juice", 1)]

    def test_zero_quantity_survives_until_end_of_batch(self):
        result = apply_actions(
            [],
            [
                {"item": "rice", "quantity": 0, "action": "add"},
                {"item": "rice", "quantity": 2, "action": "add"},
            ],
        )
        assert names_and_quantities(result) == [("rice", 2)]


class TestBadRecords:
    def test_unknown_action_is_skipped_and_reported(self):
        events = []
        result = apply_actions(
            [{"item": "milk", "quantity": 1}],
            [
                {"item": "milk", "quantity": 1, "action": "double"},
                {"item": "eggs", "quantity": 2, "action": "add"},
            ],
            on_event=lambda event_type, message: events.append(event_type),
        )
        assert names_and_quantities(result) == [("milk", 1), ("eggs", 2)]
        assert events == ["unknown_action"]

    def test_malformed_record_is_skipped_and_reported(self):
        events = []
        result = apply_actions(
            [],
            [
                {"item": "milk", "quantity": "lots"},
                {"quantity": 1},
                {"item": "eggs", "quantity": 2},
            ],
            on_event=lambda event_type, message: events.append(event_type),
        )
        assert names_and_quantities(result) == [("eggs", 2)]
        assert events == ["invalid_record", "invalid_record"]


class TestMergeDuplicates:
    def test_duplicates_are_merged(self):
        merged = merge_duplicates(
            [
                {"item": "Milk", "quantity": 1},
                {"item": "bread", "quantity": 1},
                {"item": "milk", "quantity": 2, "measurement": {"value": 1, "unit": "L"}},
            ]
        )
        assert names_and_quantities(merged) == [("Milk", 3), ("bread", 1)]
        assert merged[0].measurement == Measurement(value=1, unit="L")

    def test_reconciled_list_has_unique_names(self):
        result = apply_actions(
            [{"item": "milk", "quantity": 1}, {"item": "MILK", "quantity": 1}],
            [{"item": "milk", "quantity": 1}],
        )
        assert names_and_quantities(result) == [("milk", 3)]
