"""Scoring of extracted grocery lists against labelled expectations.

Items are matched in two passes. The exact pass pairs case-insensitively
equal names and costs nothing. The semantic pass asks the comparator about
whatever is left: expected items are visited one after another, and for each
one every remaining actual item is compared concurrently. The best candidate
is claimed only after all comparisons for that expected item have finished,
so an actual item can never be claimed twice.
"""

import asyncio
import json
import logging
import math
from collections.abc import Mapping, Sequence
from numbers import Real
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from listsmith.matching import SemanticComparator
from listsmith.models import (
    VALID_ACTIONS,
    ActionAccuracy,
    ActionEvaluationResult,
    EvaluationDetails,
    EvaluationResult,
    GroceryItem,
    ItemPair,
    Measurement,
    MissingActionError,
    QuantityMismatch,
    SemanticMatch,
    WrongActionError,
)

logger = logging.getLogger(__name__)

CORRECT_ITEMS_WEIGHT = 0.7
MAX_EXTRA_PENALTY = 0.15
MAX_INCORRECT_PENALTY = 0.15
MAX_SEMANTIC_BONUS = 0.10


def is_valid_json(text: Any) -> bool:
    """Check whether ``text`` is a string holding valid JSON."""
    if not isinstance(text, str):
        return False
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def _item_list(obj: Any) -> list[Any] | None:
    if isinstance(obj, list | tuple):
        return list(obj)
    if isinstance(obj, Mapping) and isinstance(obj.get("items"), list | tuple):
        return list(obj["items"])
    return None


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, Real)
        and not isinstance(value, bool)
        and not math.isnan(value)
    )


def _valid_measurement(measurement: Any) -> bool:
    if measurement is None or isinstance(measurement, Measurement):
        return True
    if not isinstance(measurement, Mapping):
        return False
    return _is_number(measurement.get("value")) and isinstance(
        measurement.get("unit"), str
    )


def conforms_to_schema(obj: Any) -> bool:
    """Check that ``obj`` is a well-formed list of grocery items.

    ``obj`` may be the list itself or a mapping with an ``items`` list. Each
    item needs a non-empty string ``item``, a numeric non-NaN ``quantity`` and,
    if present, an ``action`` of add, remove or modify and a ``measurement``
    with a numeric ``value`` and a string ``unit``.
    """
    items = _item_list(obj)
    if items is None:
        return False

    for item in items:
        if not isinstance(item, Mapping | BaseModel):
            return False

        name = _field(item, "item")
        if not isinstance(name, str) or not name.strip():
            return False

        if not _is_number(_field(item, "quantity")):
            return False

        action = _field(item, "action")
        if action is not None and action not in VALID_ACTIONS:
            return False

        if not _valid_measurement(_field(item, "measurement")):
            return False

    return True


def _to_grocery_items(obj: Any) -> list[GroceryItem]:
    items = _item_list(obj) or []
    return [
        GroceryItem.model_validate(
            item.model_dump() if isinstance(item, BaseModel) else item
        )
        for item in items
    ]


def _by_name(items: Sequence[GroceryItem]) -> dict[str, GroceryItem]:
    # Later duplicates overwrite earlier ones but keep the first position.
    by_name: dict[str, GroceryItem] = {}
    for item in items:
        by_name[item.item.lower()] = item
    return by_name


class MatchOutcome(BaseModel):
    """Pairs found between expected and actual items, plus what was left over."""

    pairs: list[ItemPair] = Field(default_factory=list)
    semantic_matches: dict[str, SemanticMatch] = Field(default_factory=dict)
    unmatched_expected: list[str] = Field(default_factory=list)
    unmatched_actual: list[str] = Field(default_factory=list)
    missing: list[GroceryItem] = Field(default_factory=list)
    extra: list[GroceryItem] = Field(default_factory=list)


def _pair(
    expected: GroceryItem, actual: GroceryItem, method: str, confidence: float = 1.0
) -> ItemPair:
    return ItemPair(
        expected_item=expected.item,
        actual_item=actual.item,
        expected_quantity=expected.quantity,
        actual_quantity=actual.quantity,
        expected_action=expected.action or "add",
        actual_action=actual.action or "add",
        method=method,
        confidence=confidence,
    )


async def match_items(
    actual: Sequence[GroceryItem],
    expected: Sequence[GroceryItem],
    comparator: SemanticComparator | None = None,
    *,
    semantic: bool = True,
    usual_groceries: str = "",
) -> MatchOutcome:
    """Pair expected items with actual items, exact names first.

    Args:
        actual: Items produced by the extractor
        expected: Labelled items
        comparator: Semantic comparator; the semantic pass is skipped without one
        semantic: Whether to run the semantic pass at all
        usual_groceries: Context passed to the oracle

    Returns:
        MatchOutcome with pairs in claim order and lowercased leftover names

    Raises:
        SemanticComparisonError: If the oracle fails for any comparison
    """
    expected_by_name = _by_name(expected)
    actual_by_name = _by_name(actual)
    outcome = MatchOutcome()

    unmatched_expected = dict(expected_by_name)
    for name, expected_item in expected_by_name.items():
        if name in actual_by_name:
            outcome.pairs.append(_pair(expected_item, actual_by_name[name], "exact"))
            del unmatched_expected[name]

    unmatched_actual = {
        name: item for name, item in actual_by_name.items() if name not in expected_by_name
    }

    if semantic and comparator is not None and unmatched_expected and unmatched_actual:
        for name, expected_item in list(unmatched_expected.items()):
            if not unmatched_actual:
                break

            candidates = list(unmatched_actual.items())
            results = await asyncio.gather(
                *(
                    comparator.compare(actual_item.item, expected_item.item, usual_groceries)
                    for _, actual_item in candidates
                )
            )

            best: tuple[str, GroceryItem] | None = None
            best_result = None
            for (actual_name, actual_item), result in zip(candidates, results):
                if not comparator.meets_confidence_threshold(result):
                    continue
                if best_result is None or result.confidence > best_result.confidence:
                    best, best_result = (actual_name, actual_item), result

            if best is None or best_result is None:
                continue

            actual_name, actual_item = best
            outcome.pairs.append(
                _pair(expected_item, actual_item, "semantic", best_result.confidence)
            )
            outcome.semantic_matches[name] = SemanticMatch(
                actual_item=actual_item.item,
                confidence=best_result.confidence,
                reasoning=best_result.reasoning,
            )
            del unmatched_expected[name]
            del unmatched_actual[actual_name]
            logger.info(
                'Semantic match "%s" -> "%s" (%.2f)',
                expected_item.item,
                actual_item.item,
                best_result.confidence,
            )

    outcome.unmatched_expected = list(unmatched_expected)
    outcome.unmatched_actual = list(unmatched_actual)
    outcome.missing = list(unmatched_expected.values())
    outcome.extra = list(unmatched_actual.values())
    return outcome


def evaluate_actions(
    expected: Sequence[GroceryItem], pairs: Sequence[ItemPair]
) -> ActionEvaluationResult:
    """Score the add/remove/modify labels of matched items.

    An expected item counts as correct for its action type when the paired
    actual item has the same action and the same quantity; for removals the
    quantity is ignored. A differing action is a wrong-action error, an
    unpaired expected item a missing-action error. A same-action pair with a
    different quantity is simply not counted as correct.
    """
    result = ActionEvaluationResult(
        per_action={action: ActionAccuracy() for action in VALID_ACTIONS}
    )
    pair_by_name = {pair.expected_item.lower(): pair for pair in pairs}

    total_expected = 0
    total_correct = 0
    for name, item in _by_name(expected).items():
        expected_action = item.action or "add"
        accuracy = result.per_action.setdefault(expected_action, ActionAccuracy())
        accuracy.expected += 1
        total_expected += 1

        pair = pair_by_name.get(name)
        if pair is None:
            result.missing_actions.append(
                MissingActionError(item=name, expected_action=expected_action)
            )
        elif pair.actual_action != expected_action:
            result.wrong_actions.append(
                WrongActionError(
                    item=name,
                    expected_action=expected_action,
                    actual_action=pair.actual_action,
                )
            )
        elif expected_action == "remove" or pair.quantity_matches:
            accuracy.correct += 1
            total_correct += 1

    for accuracy in result.per_action.values():
        accuracy.accuracy = (
            accuracy.correct / accuracy.expected * 100 if accuracy.expected else 100.0
        )
    result.overall_accuracy = (
        total_correct / total_expected * 100 if total_expected else 100.0
    )
    return result


def calculate_score(
    details: EvaluationDetails, semantic_match_count: int = 0
) -> float:
    """Weighted score in [0, 1] for one evaluation.

    A perfect match scores 1.0. Otherwise correct items are worth up to 0.7,
    extra and wrong-quantity items each cost up to 0.15, and semantic matches
    earn a bonus of up to 0.1.
    """
    total_expected = details.total_expected_items
    if (
        not details.extra_items
        and not details.incorrect_items
        and (details.match_score == 1 or total_expected == 0)
    ):
        return 1.0

    denominator = max(1, total_expected)
    extra_penalty = min(
        MAX_EXTRA_PENALTY, len(details.extra_items) / denominator * MAX_EXTRA_PENALTY
    )
    incorrect_penalty = min(
        MAX_INCORRECT_PENALTY,
        len(details.incorrect_items) / denominator * MAX_INCORRECT_PENALTY,
    )
    score = max(
        0.0,
        min(
            1.0,
            details.match_score * CORRECT_ITEMS_WEIGHT - extra_penalty - incorrect_penalty,
        ),
    )

    if semantic_match_count > 0:
        ratio = semantic_match_count / max(1, len(details.correct_items))
        score = min(1.0, score + min(MAX_SEMANTIC_BONUS, ratio * MAX_SEMANTIC_BONUS))
    return score


async def evaluate_grocery_output(
    actual: Any,
    expected: Any,
    comparator: SemanticComparator | None = None,
    *,
    enable_semantic_comparison: bool = True,
    exact_matches_only: bool = False,
    usual_groceries: str = "",
) -> EvaluationResult:
    """Compare an extracted list with the expected list and score it.

    Args:
        actual: Extractor output: a JSON string, a list of items, or a mapping
            with an ``items`` list. Malformed input yields a minimal result
            instead of an exception.
        expected: Labelled items, as a list or a mapping with ``items``
        comparator: Semantic comparator for the second matching pass
        enable_semantic_comparison: Run the semantic pass (default True)
        exact_matches_only: Force exact matching even if semantic is enabled
        usual_groceries: Context passed to the oracle

    Returns:
        EvaluationResult with item lists, pairs, action accuracy and score

    Raises:
        SemanticComparisonError: If the oracle fails for any comparison
    """
    expected_items = _to_grocery_items(expected)
    result = EvaluationResult(
        semantic_enabled=enable_semantic_comparison,
        exact_matches_only=exact_matches_only,
        details=EvaluationDetails(total_expected_items=len(expected_items)),
    )

    if isinstance(actual, str):
        if not is_valid_json(actual):
            result.is_valid_json = False
            return result
        actual = json.loads(actual)

    raw_actual = _item_list(actual)
    result.details.total_actual_items = len(raw_actual) if raw_actual else 0
    result.conforms_to_schema = conforms_to_schema(actual)
    if not result.conforms_to_schema:
        logger.info("Actual output does not conform to the grocery items schema")
        return result

    try:
        actual_items = _to_grocery_items(actual)
    except ValidationError as e:
        result.conforms_to_schema = False
        logger.info("Actual output does not conform to the grocery items schema: %s", e)
        return result

    outcome = await match_items(
        actual_items,
        expected_items,
        comparator,
        semantic=enable_semantic_comparison and not exact_matches_only,
        usual_groceries=usual_groceries,
    )

    details = result.details
    for pair in outcome.pairs:
        name = pair.expected_item.lower()
        if pair.quantity_matches:
            details.correct_items.append(name)
        else:
            details.incorrect_items.append(
                QuantityMismatch(
                    item=name, expected=pair.expected_quantity, actual=pair.actual_quantity
                )
            )
    details.missing_items = outcome.unmatched_expected
    details.extra_items = outcome.unmatched_actual
    details.match_score = (
        len(details.correct_items) / len(expected_items) if expected_items else 0.0
    )

    result.pairs = outcome.pairs
    result.missing_entries = outcome.missing
    result.extra_entries = outcome.extra
    result.semantic_matches = outcome.semantic_matches
    result.has_correct_items = bool(details.correct_items)
    result.has_correct_quantities = not details.incorrect_items
    result.has_extra_items = bool(details.extra_items)
    result.has_missing_items = bool(details.missing_items)
    result.score = calculate_score(details, len(outcome.semantic_matches))
    result.action_evaluation = evaluate_actions(expected_items, outcome.pairs)
    return result
