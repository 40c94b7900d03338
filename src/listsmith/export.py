"""Plain-text and local CSV export of a grocery list snapshot."""

import csv
from collections.abc import Iterable
from pathlib import Path

from listsmith.models import GroceryItem, Measurement

CSV_HEADER = ["item", "quantity", "measurement"]
DEFAULT_TITLE = "Grocery List"

MEASUREMENT_DISPLAY_FORMAT = {
    # Weight
    "g": "{value}g",
    "kg": "{value}kg",
    "lb": "{value}lb",
    "oz": "{value}oz",
    # Volume
    "mL": "{value}mL",
    "L": "{value}L",
    "fl oz": "{value}fl oz",
    "cup": "{value} cup",
    # Count units are the default and show only the value
    "piece": "{value}",
    "unit": "{value}",
}


def format_quantity(quantity: float) -> str:
    """Integers without decimals, otherwise at most two decimals, no trailing zeros."""
    if float(quantity).is_integer():
        return str(int(quantity))
    return f"{quantity:.2f}".rstrip("0").rstrip(".")


def format_measurement(measurement: Measurement | None) -> str:
    if measurement is None or not measurement.unit:
        return ""
    template = MEASUREMENT_DISPLAY_FORMAT.get(measurement.unit, "{value} {unit}")
    return template.format(value=format_quantity(measurement.value), unit=measurement.unit)


def _display_amount(item: GroceryItem) -> str:
    if item.measurement is not None:
        return format_measurement(item.measurement)
    return format_quantity(item.quantity)


def format_grocery_list_for_export(
    items: Iterable[GroceryItem],
    include_title: bool = True,
    title: str = DEFAULT_TITLE,
) -> str:
    """Render a list as bullet lines, e.g. ``- apples (2)`` or ``- flour (1kg)``.

    An empty list renders as an empty string, without a title.
    """
    lines = [f"- {item.item} ({_display_amount(item)})" for item in items]
    if not lines:
        return ""

    output = f"{title}\n\n" if include_title else ""
    return output + "\n".join(lines)


class LocalExporter:
    """Exporter for writing a grocery list snapshot to a local CSV file."""

    def export(self, items: list[GroceryItem], path: Path) -> None:
        """Write ``items`` to a CSV file, replacing any previous content.

        The file starts with a UTF-8 BOM for Excel compatibility. An empty
        list still produces the header row.

        Args:
            items: Grocery list snapshot
            path: Path to the CSV file to write

        Raises:
            PermissionError: If the file cannot be written due to permissions
            OSError: If there are filesystem-related errors
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, mode="w", encoding="utf-8", newline="") as f:
            f.write("\ufeff")  # UTF-8 BOM
            writer = csv.writer(f)
            writer.writerow(CSV_HEADER)
            for item in items:
                writer.writerow(
                    [
                        item.item,
                        format_quantity(item.quantity),
                        format_measurement(item.measurement),
                    ]
                )
