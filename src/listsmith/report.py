"""Human-readable console reports for evaluations and batch runs.

Colour is applied with ``typer.style`` after padding, so column widths are
computed on plain text and stay aligned when ANSI codes are added.
"""

from collections import defaultdict

import typer

from listsmith.export import format_quantity
from listsmith.models import EvaluationResult, ItemPair, RunError, RunStats

COLUMN_WIDTH = 32
UTTERANCE_WIDTH = 28


def _banner(title: str) -> str:
    return typer.style(f" === {title} === ", fg=typer.colors.WHITE, bg=typer.colors.BLUE, bold=True)


def _heading(title: str) -> str:
    return typer.style(f" {title} ", fg=typer.colors.WHITE, bg=typer.colors.BLUE, bold=True)


def _yes_no(flag: bool) -> str:
    return typer.style("Yes", fg=typer.colors.GREEN) if flag else typer.style("No", fg=typer.colors.RED)


def score_color(percentage: float) -> str:
    if percentage >= 90:
        return typer.colors.GREEN
    if percentage >= 70:
        return typer.colors.YELLOW
    return typer.colors.RED


def _confidence_color(confidence: float) -> str:
    if confidence >= 0.9:
        return typer.colors.GREEN
    if confidence >= 0.8:
        return typer.colors.YELLOW
    return typer.colors.RED


def _describe(name: str, quantity: float | None = None) -> str:
    if quantity is None:
        return f'"{name}"'
    return f'"{name}" ({format_quantity(quantity)})'


def _pair_label(pair: ItemPair) -> tuple[str, str]:
    confidence = f"{pair.confidence * 100:.0f}%"
    if pair.method == "exact":
        if pair.quantity_matches:
            return "✓ EXACT MATCH", typer.colors.GREEN
        return "⚠ QUANTITY MISMATCH", typer.colors.YELLOW
    if pair.quantity_matches:
        return f"✓ SEMANTIC MATCH ({confidence})", typer.colors.CYAN
    return f"⚠ SEMANTIC MATCH ({confidence}) BUT QUANTITY MISMATCH", typer.colors.YELLOW


def _comparison_rows(result: EvaluationResult) -> list[tuple[str, str, str, str]]:
    """Rows of (expected, actual, label, colour) in claim order."""
    rows = []
    for pair in result.pairs:
        label, color = _pair_label(pair)
        rows.append(
            (
                _describe(pair.expected_item, pair.expected_quantity),
                _describe(pair.actual_item, pair.actual_quantity),
                label,
                color,
            )
        )
    for item in result.missing_entries:
        rows.append(
            (_describe(item.item, item.quantity), "---", "✗ MISSING", typer.colors.RED)
        )
    for item in result.extra_entries:
        rows.append(
            ("---", _describe(item.item, item.quantity), "✗ EXTRA", typer.colors.RED)
        )
    return rows


def format_evaluation_results(
    result: EvaluationResult,
    side_by_side: bool = False,
) -> str:
    """Format one evaluation as a multi-section colour report.

    The side-by-side comparison is shown when ``side_by_side`` is set. Its
    rows come from the pairs the evaluation actually made, followed by missing
    and extra items, so two matched items are never shown as a mismatch
    because of their position in the input lists.
    """
    lines: list[str] = [_banner("Evaluation Results")]

    score = result.score * 100
    lines.append(f"Overall Score: {typer.style(f'{score:.1f}%', fg=score_color(score))}")
    lines.append(f"Valid JSON: {_yes_no(result.is_valid_json)}")
    lines.append(f"Conforms to Schema: {_yes_no(result.conforms_to_schema)}")

    enabled = (
        typer.style("Enabled", fg=typer.colors.GREEN)
        if result.semantic_enabled
        else typer.style("Disabled", fg=typer.colors.YELLOW)
    )
    lines.append("")
    lines.append(f"Semantic Matching: {enabled}")
    if result.exact_matches_only:
        lines.append(
            typer.style(
                "Exact matches only mode: Semantic matching not applied",
                fg=typer.colors.YELLOW,
            )
        )
    elif result.semantic_enabled:
        count = result.semantic_match_count
        count_color = typer.colors.GREEN if count else typer.colors.YELLOW
        lines.append(f"Semantic Matches: {typer.style(str(count), fg=count_color)} items")
        if count:
            lines.append("")
            lines.append(_banner("Semantic Match Details"))
            for name, match in result.semantic_matches.items():
                confidence = typer.style(
                    f"{match.confidence * 100:.1f}%",
                    fg=_confidence_color(match.confidence),
                )
                quoted = typer.style(f'"{name}"', bold=True)
                lines.append(
                    f'{quoted} matched "{match.actual_item}" with {confidence} confidence'
                )
                lines.append(f"  Reasoning: {match.reasoning}")
                lines.append("")

    if side_by_side:
        lines.append("")
        lines.append(_banner("Side-by-Side Comparison"))
        lines.append(typer.style("Expected (Left) vs Actual (Right):", bold=True))
        for index, (left, right, label, color) in enumerate(_comparison_rows(result), 1):
            number = typer.style(f"{index}.".ljust(4), fg=typer.colors.CYAN)
            lines.append(
                f"{number}"
                f"{typer.style(left.ljust(COLUMN_WIDTH), fg=color)}"
                f"| {typer.style(right.ljust(COLUMN_WIDTH), fg=color)}"
                f"{typer.style(label, fg=color)}"
            )

    if result.action_evaluation is not None:
        actions = result.action_evaluation
        lines.append("")
        lines.append(_heading("Action Accuracy"))
        overall = actions.overall_accuracy
        lines.append(
            f"- Overall: {typer.style(f'{overall:.1f}%', fg=score_color(overall))}"
        )
        for action, accuracy in actions.per_action.items():
            if not accuracy.expected:
                continue
            lines.append(
                f"- {action}: {accuracy.correct}/{accuracy.expected} "
                f"({typer.style(f'{accuracy.accuracy:.1f}%', fg=score_color(accuracy.accuracy))})"
            )
        for error in actions.wrong_actions:
            lines.append(
                typer.style(
                    f"  Wrong action for {error.item}: expected {error.expected_action}, "
                    f"got {error.actual_action}",
                    fg=typer.colors.RED,
                )
            )
        for error in actions.missing_actions:
            lines.append(
                typer.style(
                    f"  Missing {error.expected_action} action for {error.item}",
                    fg=typer.colors.RED,
                )
            )

    details = result.details
    match_percentage = details.match_score * 100
    if match_percentage == 100:
        match_color = typer.colors.GREEN
    elif match_percentage >= 70:
        match_color = typer.colors.YELLOW
    else:
        match_color = typer.colors.RED

    def count(items: list) -> str:
        return typer.style(
            str(len(items)), fg=typer.colors.RED if items else typer.colors.WHITE
        )

    lines.append("")
    lines.append(_heading("Item Statistics"))
    lines.append(f"- Expected Items: {details.total_expected_items}")
    lines.append(f"- Actual Items: {details.total_actual_items}")
    lines.append(
        "- Correct Items: "
        + typer.style(
            f"{len(details.correct_items)} ({match_percentage:.1f}%)", fg=match_color
        )
    )
    lines.append(f"- Items with Wrong Quantity: {count(details.incorrect_items)}")
    lines.append(f"- Extra Items: {count(details.extra_items)}")
    lines.append(f"- Missing Items: {count(details.missing_items)}")

    if details.correct_items:
        lines.append("")
        lines.append(
            typer.style(
                f"✓ Correct Items: {', '.join(details.correct_items)}",
                fg=typer.colors.GREEN,
            )
        )
    if details.incorrect_items:
        lines.append("")
        lines.append(typer.style("⚠ Items with Wrong Quantity:", fg=typer.colors.YELLOW))
        for mismatch in details.incorrect_items:
            lines.append(
                f"- {typer.style(mismatch.item, fg=typer.colors.YELLOW)}: "
                f"Expected {format_quantity(mismatch.expected)}, "
                f"Got {format_quantity(mismatch.actual)}"
            )
    if details.extra_items:
        lines.append("")
        lines.append(
            typer.style(
                f"✗ Extra Items: {', '.join(details.extra_items)}", fg=typer.colors.RED
            )
        )
    if details.missing_items:
        lines.append("")
        lines.append(
            typer.style(
                f"✗ Missing Items: {', '.join(details.missing_items)}",
                fg=typer.colors.RED,
            )
        )

    return "\n".join(lines) + "\n"


def case_note(score: float) -> str:
    if score == 1:
        return "Perfect match"
    if score > 0.7:
        return "Minor issues"
    if score > 0.3:
        return "Partial match"
    return "Significant mismatch"


def overall_assessment(success_rate: float) -> str:
    if success_rate >= 90:
        return "EXCELLENT - The model is performing very well on grocery parsing tasks."
    if success_rate >= 70:
        return "GOOD - The model is performing adequately but has room for improvement."
    if success_rate >= 50:
        return "FAIR - The model is performing below expectations. Consider prompt improvements."
    return "POOR - The model is not performing well. Significant improvements are needed."


def _truncate(text: str, width: int = UTTERANCE_WIDTH) -> str:
    return text[:width] + ("..." if len(text) > width else "")


def _group_errors(errors: list[RunError]) -> dict[str, list[RunError]]:
    grouped: dict[str, list[RunError]] = defaultdict(list)
    for error in errors:
        grouped[error.type].append(error)
    return grouped


def format_run_summary(stats: RunStats) -> str:
    """Format the per-case table, statistics, error summary and assessment of a run."""
    lines = ["", "=== Test Results Summary Table ==="]
    lines.append("╔════╦══════════════════════════════════╦═══════════╦═══════════╦═══════════════════════╗")
    lines.append("║ #  ║ Test Case                        ║ Status    ║ Score     ║ Notes                 ║")
    lines.append("╠════╬══════════════════════════════════╬═══════════╬═══════════╬═══════════════════════╣")
    for index, outcome in enumerate(stats.evaluations, 1):
        status_text = "PASSED" if outcome.passed else "FAILED"
        status = typer.style(
            status_text.ljust(9),
            fg=typer.colors.GREEN if outcome.passed else typer.colors.RED,
        )
        score = outcome.score * 100
        if score >= 80:
            color = typer.colors.GREEN
        elif score >= 50:
            color = typer.colors.YELLOW
        else:
            color = typer.colors.RED
        score_text = typer.style(f"{score:.1f}%".ljust(9), fg=color)
        lines.append(
            f"║ {str(index).ljust(2)} ║ {_truncate(outcome.utterance).ljust(32)} ║ "
            f"{status} ║ {score_text} ║ {case_note(outcome.score).ljust(21)} ║"
        )
    lines.append("╚════╩══════════════════════════════════╩═══════════╩═══════════╩═══════════════════════╝")

    success_rate = f"{stats.success_rate:.1f}%"
    average = f"{stats.average_score * 100:.1f}%"
    lines.append("")
    lines.append("=== Summary Statistics ===")
    lines.append("╔═══════════════════╦═══════════════╗")
    lines.append("║ Metric            ║ Value         ║")
    lines.append("╠═══════════════════╬═══════════════╣")
    for label, value in (
        ("Total Test Cases", stats.total),
        ("Passed", stats.success),
        ("Failed", stats.failures),
        ("Errors", len(stats.errors)),
        ("Success Rate", success_rate),
        ("Average Score", average),
    ):
        lines.append(f"║ {label.ljust(17)} ║ {str(value).ljust(13)} ║")
    lines.append("╚═══════════════════╩═══════════════╝")

    if stats.errors:
        lines.append("")
        lines.append("=== Error Summary ===")
        for error_type, errors in _group_errors(stats.errors).items():
            lines.append(f"{error_type}: {len(errors)} occurrences")
            lines.append(f"  Example: {errors[0].message}")

    lines.append("")
    lines.append("=== Overall Assessment ===")
    lines.append(f"Success Rate: {success_rate}")
    lines.append(f"Status: {overall_assessment(stats.success_rate)}")
    return "\n".join(lines) + "\n"
