"""Unit tests for data models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from listsmith.models import (
    ActionRecord,
    CaseOutcome,
    EvaluationResult,
    ExtractedItems,
    ExtractionResult,
    GroceryItem,
    ItemPair,
    Measurement,
    RunError,
    RunStats,
    SemanticComparisonResult,
    TestCase,
)

pytestmark = pytest.mark.unit


class TestGroceryItem:
    """Test cases for GroceryItem model."""

    def test_create_minimal(self):
        item = GroceryItem(item="milk", quantity=1)
        assert item.item == "milk"
        assert item.quantity == 1.0
        assert item.action is None
        assert item.measurement is None

    def test_create_with_measurement(self):
        item = GroceryItem(
            item="flour",
            quantity=1,
            action="add",
            measurement={"value": 500, "unit": "g", "type": "weight"},
        )
        assert item.measurement == Measurement(value=500, unit="g", type="weight")

    def test_invalid_action(self):
        with pytest.raises(ValidationError):
            GroceryItem(item="milk", quantity=1, action="buy")

    def test_missing_quantity(self):
        with pytest.raises(ValidationError):
            GroceryItem(item="milk")


class TestActionRecord:
    """Test cases for ActionRecord model."""

    def test_default_action(self):
        assert ActionRecord(item="milk", quantity=1).action == "add"

    def test_null_action_becomes_add(self):
        assert ActionRecord(item="milk", quantity=1, action=None).action == "add"

    def test_unknown_action_is_kept(self):
        assert ActionRecord(item="milk", quantity=1, action="double").action == "double"

    def test_extracted_items_from_json(self):
        extracted = ExtractedItems.model_validate_json(
            '{"items": [{"item": "яйцо", "quantity": 10, "action": "add"}]}'
        )
        assert extracted.items == [ActionRecord(item="яйцо", quantity=10)]


class TestSemanticComparisonResult:
    """Test cases for SemanticComparisonResult model."""

    def test_wire_names(self):
        result = SemanticComparisonResult.model_validate(
            {"isMatch": True, "confidence": 0.9, "reasoning": "same"}
        )
        assert result.is_match is True

    def test_field_names(self):
        result = SemanticComparisonResult(is_match=False, confidence=0.2, reasoning="no")
        assert result.is_match is False

    def test_confidence_clamped(self):
        result = SemanticComparisonResult(is_match=True, confidence=3, reasoning="")
        assert result.confidence == 1.0

    def test_strict_boolean(self):
        with pytest.raises(ValidationError):
            SemanticComparisonResult.model_validate(
                {"isMatch": "true", "confidence": 0.9, "reasoning": "r"}
            )

    def test_frozen(self):
        result = SemanticComparisonResult(is_match=True, confidence=0.9, reasoning="")
        with pytest.raises(ValidationError):
            result.confidence = 0.1


class TestEvaluationResult:
    """Test cases for evaluation records."""

    def test_defaults(self):
        result = EvaluationResult()
        assert result.score == 0.0
        assert result.is_valid_json is True
        assert result.conforms_to_schema is False
        assert result.semantic_match_count == 0
        assert result.details.total_expected_items == 0

    def test_score_out_of_range(self):
        with pytest.raises(ValidationError):
            EvaluationResult(score=1.5)

    def test_item_pair_quantity_matches(self):
        pair = ItemPair(
            expected_item="milk",
            actual_item="Milk",
            expected_quantity=1,
            actual_quantity=1.0,
            method="exact",
        )
        assert pair.quantity_matches
        assert pair.model_copy(update={"actual_quantity": 2}).quantity_matches is False


class TestRunRecords:
    """Test cases for batch runner records."""

    def test_test_case(self):
        case = TestCase(utterance="two apples", expected=[{"item": "apple", "quantity": 2}])
        assert case.expected[0] == GroceryItem(item="apple", quantity=2)

    def test_run_stats_aggregates(self):
        stats = RunStats(
            total=4,
            success=2,
            failures=2,
            errors=[RunError(type="timeout", message="timed out", utterance="x")],
            evaluations=[
                CaseOutcome(utterance="a", score=1.0, passed=True),
                CaseOutcome(utterance="b", score=0.5, passed=True),
                CaseOutcome(utterance="c", score=0.0, passed=False),
            ],
        )
        assert stats.average_score == pytest.approx(0.5)
        assert stats.success_rate == 50.0
        assert isinstance(stats.timestamp, datetime)

    def test_empty_run_stats(self):
        stats = RunStats()
        assert stats.average_score == 0.0
        assert stats.success_rate == 0.0

    def test_run_error_type(self):
        with pytest.raises(ValidationError):
            RunError(type="network", message="m", utterance="u")

    def test_extraction_result(self):
        result = ExtractionResult(
            items=[ActionRecord(item="milk", quantity=1)],
            input_tokens=100,
            output_tokens=20,
            processing_time=0.4,
        )
        assert result.cache_read_input_tokens == 0
        assert isinstance(result.timestamp, datetime)
