"""Example usage of the grocery extractor and list reconciliation.

This example demonstrates how to use the GroceryExtractor to turn a spoken
request into action records, apply them to a grocery list, and score the
result against a hand-labelled answer with semantic matching.
"""

import asyncio
import os

from listsmith.evaluation import evaluate_grocery_output
from listsmith.export import format_grocery_list_for_export
from listsmith.integrations import AnthropicOracle, GroceryExtractor
from listsmith.matching import SemanticComparator
from listsmith.reconcile import apply_actions
from listsmith.report import format_evaluation_results


async def main():
    """Example of extracting, applying and scoring grocery actions."""
    api_key = os.getenv("ANTHROPIC_API_KEY", "your-api-key-here")
    extractor = GroceryExtractor(api_key=api_key)
    comparator = SemanticComparator(AnthropicOracle(api_key=api_key))

    current_list = [
        {"item": "milk", "quantity": 1},
        {"item": "bread", "quantity": 2},
    ]
    transcript = "Add three apples, take the bread off and make it two milks"
    expected = [
        {"item": "apples", "quantity": 3, "action": "add"},
        {"item": "bread", "quantity": 1, "action": "remove"},
        {"item": "milk", "quantity": 2, "action": "modify"},
    ]

    try:
        result = await extractor.extract_actions(transcript, "milk\nbread\napples")

        print("Actions:")
        for record in result.items:
            print(f"  - {record.action} {record.item} ({record.quantity:g})")

        print(f"\nProcessing time: {result.processing_time:.2f}s")
        print(f"Input tokens: {result.input_tokens}")
        print(f"Output tokens: {result.output_tokens}")

        updated = apply_actions(current_list, result.items)
        print()
        print(format_grocery_list_for_export(updated) or "Grocery list is empty.")

        actual = [record.model_dump() for record in result.items]
        evaluation = await evaluate_grocery_output(actual, expected, comparator)
        print(format_evaluation_results(evaluation, side_by_side=True))

    except Exception as e:
        print(f"Error during extraction: {e}")


if __name__ == "__main__":
    asyncio.run(main())
