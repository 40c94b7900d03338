import asyncio
import json
import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv

from listsmith.export import LocalExporter, format_grocery_list_for_export
from listsmith.integrations.anthropic_extractor import (
    DEFAULT_MODEL,
    ExtractionError,
    GroceryExtractor,
)
from listsmith.integrations.anthropic_oracle import AnthropicOracle
from listsmith.matching import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    SemanticComparator,
    SemanticComparisonError,
)
from listsmith.reconcile import apply_actions
from listsmith.report import format_run_summary
from listsmith.runner import (
    DEFAULT_TEST_DATA_PATH,
    DEFAULT_TIMEOUT,
    get_usual_groceries,
    load_test_cases,
    run_evaluation,
)

load_dotenv()

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

app = typer.Typer(no_args_is_help=True)


@app.callback(invoke_without_command=True)
def callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log matching and reconciliation details"
    ),
):
    """Listsmith CLI tool."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=LOG_FORMAT,
        force=True,
    )
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def cli_progress(event_type: str, message: str):
    """Callback to handle progress events and output to CLI."""
    if "error" in event_type:
        typer.echo(message, err=True)
    else:
        typer.echo(message)


def _require_api_key() -> str:
    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        typer.echo("Error: ANTHROPIC_API_KEY not found.", err=True)
        raise typer.Exit(code=1)
    return api_key


def _model() -> str:
    return os.getenv("LISTSMITH_MODEL") or DEFAULT_MODEL


def _build_comparator(api_key: str, threshold: float) -> SemanticComparator:
    try:
        return SemanticComparator(
            AnthropicOracle(api_key=api_key, model=_model()),
            confidence_threshold=threshold,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


@app.command()
def evaluate(
    data: Path = typer.Option(
        DEFAULT_TEST_DATA_PATH, "--data", "-d", help="JSONL file with labelled test cases"
    ),
    usual_groceries_path: Path | None = typer.Option(
        None,
        "--usual-groceries-path",
        "-u",
        help="File with the user's usual groceries, one per line",
    ),
    no_usual_groceries: bool = typer.Option(
        False, "--no-usual-groceries", help="Run without a usual groceries list"
    ),
    exact_only: bool = typer.Option(
        False, "--exact-only", help="Disable semantic matching"
    ),
    threshold: float = typer.Option(
        DEFAULT_CONFIDENCE_THRESHOLD,
        "--threshold",
        help="Minimum oracle confidence for a semantic match",
    ),
    timeout: float = typer.Option(
        DEFAULT_TIMEOUT, "--timeout", help="Per-case extraction timeout in seconds"
    ),
):
    """Run the extractor over a labelled corpus and score every case."""
    api_key = _require_api_key()
    comparator = _build_comparator(api_key, threshold)

    typer.echo("Loading test cases...")
    cases = load_test_cases(data)
    if not cases:
        typer.echo("No test cases loaded or an error occurred.", err=True)
        return
    typer.echo(f"Successfully loaded {len(cases)} test cases.")

    usual_groceries = get_usual_groceries(
        usual_groceries_path, disabled=no_usual_groceries, on_progress=cli_progress
    )

    typer.echo("")
    typer.echo(
        typer.style(" === Configuration === ", fg=typer.colors.WHITE, bg=typer.colors.BLUE, bold=True)
    )
    semantic = (
        typer.style("Disabled", fg=typer.colors.YELLOW)
        if exact_only
        else typer.style("Enabled", fg=typer.colors.GREEN)
    )
    usual = (
        typer.style("Disabled", fg=typer.colors.YELLOW)
        if no_usual_groceries
        else typer.style("Enabled", fg=typer.colors.GREEN)
    )
    typer.echo(f"Semantic Comparison: {semantic}")
    typer.echo(f"Confidence Threshold: {threshold:.2f}")
    typer.echo(f"Usual Groceries: {usual}")

    try:
        extractor = GroceryExtractor(api_key=api_key, model=_model())
    except Exception as e:
        typer.echo(f"Failed to initialize Anthropic extractor: {e}", err=True)
        raise typer.Exit(code=1) from e

    async def extract(utterance: str, groceries: str):
        result = await extractor.extract_actions(utterance, groceries)
        return result.items

    stats = asyncio.run(
        run_evaluation(
            cases,
            extract,
            comparator,
            usual_groceries=usual_groceries,
            timeout=timeout,
            exact_matches_only=exact_only,
            on_progress=cli_progress,
        )
    )
    typer.echo(format_run_summary(stats))
    typer.echo("Finished processing all test cases.")


def _read_list(path: Path | None) -> list:
    if path is None or not path.exists():
        return []
    data = json.loads(path.read_text(encoding="utf-8"))
    return data["items"] if isinstance(data, dict) else data


@app.command()
def apply(
    transcript: str = typer.Option(
        ..., "--transcript", "-t", help="Utterance to extract grocery actions from"
    ),
    list_path: Path | None = typer.Option(
        None, "--list", "-l", help="JSON file with the current grocery list"
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write the updated list to this JSON file"
    ),
    csv_path: Path | None = typer.Option(
        None, "--csv", help="Also export the updated list to this CSV file"
    ),
    usual_groceries_path: Path | None = typer.Option(
        None,
        "--usual-groceries-path",
        "-u",
        help="File with the user's usual groceries, one per line",
    ),
    no_usual_groceries: bool = typer.Option(
        False, "--no-usual-groceries", help="Run without a usual groceries list"
    ),
):
    """Extract actions from a transcript and apply them to a grocery list."""
    api_key = _require_api_key()

    try:
        current_list = _read_list(list_path)
    except (OSError, ValueError, KeyError) as e:
        typer.echo(f"Error reading grocery list {list_path}: {e}", err=True)
        raise typer.Exit(code=1) from e

    usual_groceries = get_usual_groceries(
        usual_groceries_path, disabled=no_usual_groceries, on_progress=cli_progress
    )

    try:
        extractor = GroceryExtractor(api_key=api_key, model=_model())
        result = asyncio.run(extractor.extract_actions(transcript, usual_groceries))
    except (ValueError, ExtractionError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
    except Exception as e:
        typer.echo(f"Failed to extract grocery actions: {e}", err=True)
        raise typer.Exit(code=1) from e

    try:
        updated = apply_actions(current_list, result.items, on_event=cli_progress)
    except ValueError as e:
        typer.echo(f"Error: invalid grocery list {list_path}: {e}", err=True)
        raise typer.Exit(code=1) from e

    typer.echo(format_grocery_list_for_export(updated) or "Grocery list is empty.")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        payload = {"items": [item.model_dump(exclude_none=True) for item in updated]}
        output.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        typer.echo(f"Saved updated list to {output}")

    if csv_path:
        LocalExporter().export(updated, csv_path)
        typer.echo(f"Exported updated list to {csv_path}")


@app.command()
def compare(
    item_a: str = typer.Argument(..., help="Extracted item name"),
    item_b: str = typer.Argument(..., help="Expected item name"),
    usual_groceries_path: Path | None = typer.Option(
        None,
        "--usual-groceries-path",
        "-u",
        help="File with the user's usual groceries, one per line",
    ),
    threshold: float = typer.Option(
        DEFAULT_CONFIDENCE_THRESHOLD,
        "--threshold",
        help="Minimum oracle confidence for a semantic match",
    ),
):
    """Ask the oracle whether two item names refer to the same product."""
    api_key = _require_api_key()
    comparator = _build_comparator(api_key, threshold)

    usual_groceries = ""
    if usual_groceries_path:
        usual_groceries = get_usual_groceries(usual_groceries_path, on_progress=cli_progress)

    try:
        result = asyncio.run(comparator.compare(item_a, item_b, usual_groceries))
    except SemanticComparisonError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    accepted = comparator.meets_confidence_threshold(result)
    verdict = (
        typer.style("MATCH", fg=typer.colors.GREEN)
        if result.is_match
        else typer.style("NO MATCH", fg=typer.colors.RED)
    )
    typer.echo(f'"{item_a}" vs "{item_b}": {verdict}')
    typer.echo(f"Confidence: {result.confidence:.2f} (threshold {comparator.confidence_threshold:.2f})")
    typer.echo(f"Meets threshold: {'Yes' if accepted else 'No'}")
    typer.echo(f"Reasoning: {result.reasoning}")


def main():
    app()


if __name__ == "__main__":
    main()
