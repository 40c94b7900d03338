"""Apply extracted add/remove/modify actions to a grocery list snapshot.

Lookups are case-insensitive exact name comparisons. Semantic matching is
never used here: reconciliation runs on every utterance and must not depend
on an oracle call.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from listsmith.models import ActionRecord, GroceryItem

logger = logging.getLogger(__name__)


def _find(items: list[GroceryItem], name: str) -> int:
    lowered = name.lower()
    for index, existing in enumerate(items):
        if existing.item.lower() == lowered:
            return index
    return -1


def merge_duplicates(
    items: Iterable[GroceryItem | Mapping[str, Any]],
) -> list[GroceryItem]:
    """Copy ``items`` merging case-insensitive duplicate names.

    Quantities are summed; the first spelling is kept and a later measurement
    replaces an earlier one.
    """
    merged: list[GroceryItem] = []
    for raw in items:
        item = raw if isinstance(raw, GroceryItem) else GroceryItem.model_validate(raw)
        index = _find(merged, item.item)
        if index < 0:
            merged.append(item.model_copy(deep=True))
            continue
        existing = merged[index]
        existing.quantity += item.quantity
        if item.measurement is not None:
            existing.measurement = item.measurement.model_copy()
    return merged


def apply_actions(
    current_list: Iterable[GroceryItem | Mapping[str, Any]],
    actions: Iterable[ActionRecord | Mapping[str, Any]],
    on_event: Callable[[str, str], None] | None = None,
) -> list[GroceryItem]:
    """Apply a batch of action records to a list and return the new list.

    Records are applied strictly in order against the accumulating result, so
    an add followed by a remove of the same item in one batch cancels out.
    ``current_list`` is never mutated.

    Args:
        current_list: Current grocery list snapshot
        actions: Action records, or raw mappings in the extraction wire format
        on_event: Optional callback for notable conditions (event_type, message).
            Event types: ``unknown_action``, ``invalid_record``, ``remove_missing``

    Returns:
        The updated list with every item whose quantity dropped to zero or
        below removed
    """

    def report(event_type: str, message: str) -> None:
        logger.warning(message)
        if on_event:
            on_event(event_type, message)

    updated = merge_duplicates(current_list)

    for raw in actions:
        try:
            record = (
                raw
                if isinstance(raw, ActionRecord)
                else ActionRecord.model_validate(raw)
            )
        except ValidationError as e:
            report("invalid_record", f"Skipping malformed action record {raw!r}: {e}")
            continue

        index = _find(updated, record.item)

        action = record.action
        if action == "add":
            if index >= 0:
                existing = updated[index]
                old_quantity = existing.quantity
                existing.quantity += record.quantity
                if record.measurement is not None:
                    existing.measurement = record.measurement.model_copy()
                logger.info(
                    "Updated quantity for existing item %s: %s -> %s",
                    existing.item,
                    old_quantity,
                    existing.quantity,
                )
            else:
                updated.append(_new_item(record))
                logger.info("Added new item %s (%s)", record.item, record.quantity)

        elif action == "remove":
            if index >= 0:
                removed = updated.pop(index)
                logger.info("Removed item %s", removed.item)
            else:
                message = f"Attempted to remove non-existent item: {record.item}"
                logger.info(message)
                if on_event:
                    on_event("remove_missing", message)

        elif action == "modify":
            if index >= 0:
                existing = updated[index]
                logger.info(
                    "Modified quantity for %s: %s -> %s",
                    existing.item,
                    existing.quantity,
                    record.quantity,
                )
                existing.quantity = record.quantity
                if record.measurement is not None:
                    existing.measurement = record.measurement.model_copy()
            else:
                # Modify of an unknown item is an implicit add
                updated.append(_new_item(record))
                logger.info(
                    "Added new item %s from modify action (%s)",
                    record.item,
                    record.quantity,
                )

        else:
            report(
                "unknown_action",
                f"Unknown action type: {action!r} for item: {record.item}",
            )

    return [item for item in updated if item.quantity > 0]


def _new_item(record: ActionRecord) -> GroceryItem:
    return GroceryItem(
        item=record.item,
        quantity=record.quantity,
        action="add",
        measurement=record.measurement.model_copy() if record.measurement else None,
    )
