"""Data models for grocery lists, action records and evaluation results."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ActionType = Literal["add", "remove", "modify"]
VALID_ACTIONS: tuple[str, ...] = ("add", "remove", "modify")


class Measurement(BaseModel):
    """Weight, volume or count attached to an item by the measurement parser."""

    value: float
    unit: str
    type: Literal["weight", "volume", "count"] | None = None


class GroceryItem(BaseModel):
    """One entry in a grocery list snapshot."""

    item: str
    quantity: float
    action: ActionType | None = None
    measurement: Measurement | None = None


class ActionRecord(BaseModel):
    """A single add/remove/modify instruction extracted from an utterance.

    ``action`` stays a plain string so that an unexpected label coming back
    from the extractor reaches the reconciler, which reports and skips it.
    """

    item: str = Field(description="Name of the grocery item, in the original language.")
    quantity: float = Field(description="Amount of the item as a number.")
    action: str = Field(
        default="add", description='One of "add", "remove" or "modify".'
    )
    measurement: Measurement | None = None

    @field_validator("action", mode="before")
    @classmethod
    def _default_action(cls, value):
        return "add" if value is None else value


class ExtractedItems(BaseModel):
    """Structured output returned by the extraction model."""

    items: list[ActionRecord] = Field(default_factory=list)


class SemanticComparisonResult(BaseModel):
    """Verdict of the semantic comparison oracle for one pair of item names."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    is_match: bool = Field(alias="isMatch", strict=True)
    confidence: float = Field(strict=True, allow_inf_nan=False)
    reasoning: str = Field(strict=True)

    @field_validator("confidence", mode="after")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(1.0, value))


class CacheEntry(BaseModel):
    """Cached oracle verdict for an unordered pair of sanitized names."""

    key: str
    result: SemanticComparisonResult
    timestamp: float


class CacheStats(BaseModel):
    """Counters describing semantic cache usage."""

    size: int = 0
    hits: int = 0
    misses: int = 0
    expirations: int = 0


class QuantityMismatch(BaseModel):
    """An expected item that was found with a different quantity."""

    item: str
    expected: float
    actual: float


class SemanticMatch(BaseModel):
    """How an expected item was semantically matched to an actual item."""

    actual_item: str
    confidence: float
    reasoning: str


class ItemPair(BaseModel):
    """Pairing between an expected item and the actual item that claimed it."""

    expected_item: str
    actual_item: str
    expected_quantity: float
    actual_quantity: float
    expected_action: str = "add"
    actual_action: str = "add"
    method: Literal["exact", "semantic"]
    confidence: float = 1.0

    @property
    def quantity_matches(self) -> bool:
        return self.expected_quantity == self.actual_quantity


class EvaluationDetails(BaseModel):
    correct_items: list[str] = Field(default_factory=list)
    incorrect_items: list[QuantityMismatch] = Field(default_factory=list)
    extra_items: list[str] = Field(default_factory=list)
    missing_items: list[str] = Field(default_factory=list)
    total_expected_items: int = 0
    total_actual_items: int = 0
    match_score: float = 0.0


class ActionAccuracy(BaseModel):
    """Accuracy for one action type, as a percentage."""

    expected: int = 0
    correct: int = 0
    accuracy: float = 100.0


class WrongActionError(BaseModel):
    item: str
    expected_action: str
    actual_action: str


class MissingActionError(BaseModel):
    item: str
    expected_action: str


class ActionEvaluationResult(BaseModel):
    """Per-action accuracy and the action errors found for one test case."""

    per_action: dict[str, ActionAccuracy] = Field(default_factory=dict)
    wrong_actions: list[WrongActionError] = Field(default_factory=list)
    missing_actions: list[MissingActionError] = Field(default_factory=list)
    overall_accuracy: float = 100.0


class EvaluationResult(BaseModel):
    """Outcome of comparing an actual list against an expected list."""

    is_valid_json: bool = True
    conforms_to_schema: bool = False
    has_correct_items: bool = False
    has_correct_quantities: bool = False
    has_extra_items: bool = False
    has_missing_items: bool = False
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    details: EvaluationDetails = Field(default_factory=EvaluationDetails)
    semantic_matches: dict[str, SemanticMatch] = Field(default_factory=dict)
    pairs: list[ItemPair] = Field(default_factory=list)
    missing_entries: list[GroceryItem] = Field(default_factory=list)
    extra_entries: list[GroceryItem] = Field(default_factory=list)
    semantic_enabled: bool = True
    exact_matches_only: bool = False
    action_evaluation: ActionEvaluationResult | None = None

    @property
    def semantic_match_count(self) -> int:
        return len(self.semantic_matches)


class TestCase(BaseModel):
    """One labelled utterance from the evaluation corpus."""

    __test__ = False  # not a pytest class

    utterance: str
    expected: list[GroceryItem]


class CaseOutcome(BaseModel):
    utterance: str
    score: float
    passed: bool


class RunError(BaseModel):
    """A test case that failed with an exception instead of a score."""

    type: Literal["api_error", "timeout", "parsing_error", "unknown"]
    message: str
    utterance: str


class RunStats(BaseModel):
    """Aggregate statistics of one batch evaluation run."""

    total: int = 0
    success: int = 0
    failures: int = 0
    errors: list[RunError] = Field(default_factory=list)
    evaluations: list[CaseOutcome] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def average_score(self) -> float:
        if not self.evaluations:
            return 0.0
        return sum(e.score for e in self.evaluations) / len(self.evaluations)

    @property
    def success_rate(self) -> float:
        return (self.success / self.total) * 100 if self.total else 0.0


class ExtractionResult(BaseModel):
    """Extracted action records with token usage metadata."""

    items: list[ActionRecord]
    input_tokens: int
    output_tokens: int
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    processing_time: float  # in seconds
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
