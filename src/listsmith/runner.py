"""Batch evaluation of an extractor against a labelled JSONL corpus."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import typer
from pydantic import BaseModel, ValidationError

from listsmith.evaluation import evaluate_grocery_output
from listsmith.integrations.anthropic_extractor import ExtractionError
from listsmith.matching import SemanticComparator
from listsmith.models import (
    CaseOutcome,
    EvaluationResult,
    RunError,
    RunStats,
    TestCase,
)
from listsmith.report import format_evaluation_results

logger = logging.getLogger(__name__)

DEFAULT_TEST_DATA_PATH = Path("data") / "grocery_test_data.jsonl"
DEFAULT_TIMEOUT = 30.0  # seconds
PASS_THRESHOLD = 0.5

DEFAULT_USUAL_GROCERIES = "\n".join(
    [
        "milk",
        "eggs",
        "bread",
        "butter",
        "bananas",
        "apples",
        "chicken breast",
        "rice",
        "pasta",
        "tomatoes",
        "cheese",
        "yogurt",
        "coffee",
        "toilet paper",
    ]
)

Extract = Callable[[str, str], Awaitable[Any]]
ProgressCallback = Callable[[str, str], None]


class ExtractionTimeoutError(ExtractionError):
    """Raised when one extraction call exceeds the per-case timeout."""


def load_test_cases(path: Path = DEFAULT_TEST_DATA_PATH) -> list[TestCase]:
    """Load labelled test cases from a JSONL file.

    Each line holds ``{"item": {"utterance": ..., "expect_json": ...}}`` where
    ``expect_json`` is itself a JSON string of ``{"items": [...]}``. Blank lines
    are skipped, malformed lines are logged and skipped, and an unreadable
    file yields an empty list.
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Failed to read test data file at %s: %s", path, e)
        return []

    cases: list[TestCase] = []
    for line_number, line in enumerate(content.splitlines(), 1):
        if not line.strip():
            continue
        try:
            raw = json.loads(line)["item"]
            utterance = raw["utterance"]
            expect_json = raw["expect_json"]
            if not isinstance(utterance, str) or not isinstance(expect_json, str):
                logger.warning("Skipping malformed test case line %d: %s", line_number, line)
                continue
            expected = json.loads(expect_json)
            items = expected["items"] if isinstance(expected, dict) else expected
            cases.append(TestCase(utterance=utterance, expected=items))
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning(
                "Failed to parse line %d into a valid test case: %s", line_number, e
            )
    return cases


def get_usual_groceries(
    path: Path | None = None,
    disabled: bool = False,
    on_progress: ProgressCallback | None = None,
) -> str:
    """Resolve the usual-groceries context for a run.

    Args:
        path: Optional file holding one item per line
        disabled: Run without context at all
        on_progress: Optional callback for progress updates (event_type, message)

    Returns:
        Empty string when disabled, the file contents when readable, the
        built-in default list otherwise
    """

    def notify(event_type: str, message: str) -> None:
        if on_progress:
            on_progress(event_type, message)

    if disabled:
        notify("config", "Running without usual groceries list")
        return ""

    if path is not None:
        try:
            content = Path(path).read_text(encoding="utf-8")
            notify("config", f"Using custom usual groceries list from: {path}")
            return content
        except OSError as e:
            logger.warning("Error reading usual groceries file %s: %s", path, e)
            notify(
                "config_error",
                f"Error reading usual groceries file: {path}. "
                f"Falling back to default usual groceries list. Error: {e}",
            )

    notify("config", "Using default usual groceries list")
    return DEFAULT_USUAL_GROCERIES


def classify_error(message: str) -> str:
    if "timed out" in message:
        return "timeout"
    if "API" in message or "key" in message:
        return "api_error"
    if "parse" in message or "JSON" in message:
        return "parsing_error"
    return "unknown"


def _as_items(actual: Any) -> Any:
    if isinstance(actual, BaseModel):
        actual = actual.model_dump()
    if isinstance(actual, list | tuple):
        return {
            "items": [
                item.model_dump() if isinstance(item, BaseModel) else item
                for item in actual
            ]
        }
    return actual


async def run_test_case(
    case: TestCase,
    extract: Extract,
    comparator: SemanticComparator | None,
    *,
    usual_groceries: str = "",
    timeout: float = DEFAULT_TIMEOUT,
    exact_matches_only: bool = False,
) -> tuple[Any, EvaluationResult]:
    """Extract one utterance and evaluate the output.

    Returns:
        Tuple of (actual output as ``{"items": [...]}``, evaluation)

    Raises:
        ExtractionTimeoutError: If extraction takes longer than ``timeout``
        Exception: Whatever the extractor or the semantic comparator raised
    """
    try:
        extracted = await asyncio.wait_for(
            extract(case.utterance, usual_groceries), timeout=timeout
        )
    except TimeoutError as e:
        raise ExtractionTimeoutError(
            f"LLM request timed out after {timeout:g} seconds"
        ) from e

    actual = _as_items(extracted)
    evaluation = await evaluate_grocery_output(
        actual,
        {"items": [item.model_dump() for item in case.expected]},
        comparator,
        enable_semantic_comparison=comparator is not None,
        exact_matches_only=exact_matches_only,
        usual_groceries=usual_groceries,
    )
    return actual, evaluation


async def run_evaluation(
    cases: list[TestCase],
    extract: Extract,
    comparator: SemanticComparator | None,
    *,
    usual_groceries: str = "",
    timeout: float = DEFAULT_TIMEOUT,
    exact_matches_only: bool = False,
    on_progress: ProgressCallback | None = None,
) -> RunStats:
    """Run every test case in order and tally the results.

    A failing case is classified and recorded; it never aborts the run.

    Args:
        cases: Test cases to run
        extract: Coroutine function ``(utterance, usual_groceries) -> items``
        comparator: Semantic comparator, or None for exact matching only
        usual_groceries: Context passed to extractor and oracle
        timeout: Per-case extraction timeout in seconds
        exact_matches_only: Skip the semantic pass
        on_progress: Optional callback for progress updates (event_type, message)

    Returns:
        RunStats for the whole batch
    """

    def notify(event_type: str, message: str) -> None:
        if on_progress:
            on_progress(event_type, message)

    stats = RunStats(total=len(cases))

    for index, case in enumerate(cases, 1):
        separator = typer.style("=" * 80, fg=typer.colors.CYAN)
        title = typer.style(f"TEST CASE #{index}:", fg=typer.colors.CYAN, bold=True)
        notify("case_start", f"\n{separator}\n{title} \"{case.utterance}\"\n{separator}")

        try:
            _, evaluation = await run_test_case(
                case,
                extract,
                comparator,
                usual_groceries=usual_groceries,
                timeout=timeout,
                exact_matches_only=exact_matches_only,
            )
        except Exception as e:
            stats.failures += 1
            message = str(e) or "Unknown error"
            error_type = classify_error(message)
            stats.errors.append(
                RunError(type=error_type, message=message, utterance=case.utterance)
            )
            logger.error(
                'Error processing utterance "%s" [%s]: %s',
                case.utterance,
                error_type,
                message,
            )
            notify(
                "case_error",
                f'Error processing utterance "{case.utterance}" [{error_type}]: {message}',
            )
            continue

        passed = evaluation.score >= PASS_THRESHOLD
        stats.evaluations.append(
            CaseOutcome(utterance=case.utterance, score=evaluation.score, passed=passed)
        )
        if passed:
            stats.success += 1
        else:
            stats.failures += 1

        notify(
            "case_report",
            format_evaluation_results(evaluation, side_by_side=True),
        )
        score = f"(Score: {evaluation.score * 100:.1f}%)"
        if passed:
            notify(
                "case_passed",
                typer.style(" TEST RESULT: PASSED ", fg=typer.colors.BLACK, bg=typer.colors.GREEN)
                + " "
                + typer.style(score, fg=typer.colors.GREEN),
            )
        else:
            notify(
                "case_failed",
                typer.style(" TEST RESULT: FAILED ", fg=typer.colors.WHITE, bg=typer.colors.RED)
                + " "
                + typer.style(score, fg=typer.colors.RED),
            )

    return stats
