"""Item name matching and the cached semantic comparison service.

Two grocery names are first compared after sanitization. Only when the
sanitized forms differ is the semantic comparison oracle consulted, and its
verdicts are cached per unordered pair of names so that ``compare(a, b)`` and
``compare(b, a)`` share one entry.
"""

import asyncio
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable
from typing import Literal, Protocol

from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from listsmith.models import CacheEntry, CacheStats, SemanticComparisonResult

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.8
DEFAULT_CACHE_TIMEOUT = 24 * 60 * 60  # seconds
MAX_ATTEMPTS = 3
BASE_DELAY = 1.0  # seconds, doubled on every retry

CACHE_KEY_SEPARATOR = "::"
FILLER_WORDS = frozenset({"a", "an", "the", "some", "few", "little"})
NO_USUAL_GROCERIES = "No usual groceries provided"
EXACT_MATCH_REASONING = "Exact match after sanitization"

_PUNCTUATION = re.compile(r"[.,;:!?'\"-]+")
_WHITESPACE = re.compile(r"\s+")


class SemanticComparisonError(Exception):
    """Raised when the oracle could not produce a verdict within the retry budget."""


class OracleResponseError(Exception):
    """Raised when a single oracle reply is unusable."""


def sanitize_item_name(name: str) -> str:
    """Lowercase, collapse whitespace, strip punctuation and drop filler words.

    Qualifiers are kept: "red apples" and "apples" remain different.
    """
    if not name:
        return ""
    sanitized = _WHITESPACE.sub(" ", name.lower().strip())
    sanitized = _PUNCTUATION.sub("", sanitized)
    return " ".join(t for t in sanitized.split() if t not in FILLER_WORDS)


def cache_key(first: str, second: str) -> str:
    """Order-independent key for a pair of item names."""
    pair = sorted((sanitize_item_name(first), sanitize_item_name(second)))
    return CACHE_KEY_SEPARATOR.join(pair)


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` block in ``text``, if any.

    Braces inside JSON strings are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this brace; try the next one.
        start = text.find("{", start + 1)
    return None


class ParsedReply(BaseModel):
    kind: Literal["ok"] = "ok"
    result: SemanticComparisonResult


class ReplyParseError(BaseModel):
    kind: Literal["parse_error"] = "parse_error"
    message: str


class ReplySchemaError(BaseModel):
    kind: Literal["schema_error"] = "schema_error"
    message: str


OracleReply = ParsedReply | ReplyParseError | ReplySchemaError


def parse_oracle_reply(text: str) -> OracleReply:
    """Parse and validate a raw oracle reply.

    The reply may wrap its JSON object in prose; the first balanced object is
    used. Types are checked strictly: ``"isMatch": "yes"`` is a schema error,
    not a guess.
    """
    block = extract_json_object(text or "")
    if block is None:
        return ReplyParseError(message="No JSON object found in the response")
    try:
        payload = json.loads(block)
    except json.JSONDecodeError as e:
        return ReplyParseError(message=f"Failed to parse response: {e}")
    try:
        result = SemanticComparisonResult.model_validate(payload)
    except ValidationError as e:
        return ReplySchemaError(message=f"Invalid response format: {e}")
    return ParsedReply(result=result)


class ComparisonOracle(Protocol):
    """External service that judges whether two names denote the same product."""

    async def judge(
        self, extracted_item: str, expected_item: str, usual_groceries: str
    ) -> str: ...


class SemanticComparator:
    """Semantic comparison of grocery item names with a time-boxed cache.

    Each instance owns its cache, statistics, timeout and confidence threshold,
    so independent comparators never share state.
    """

    def __init__(
        self,
        oracle: ComparisonOracle,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        cache_timeout: float = DEFAULT_CACHE_TIMEOUT,
        max_attempts: int = MAX_ATTEMPTS,
        retry_base_delay: float = BASE_DELAY,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            oracle: Service answering "are these the same product?"
            confidence_threshold: Minimum confidence for a match to count (0-1)
            cache_timeout: Seconds a cached verdict stays valid
            max_attempts: Oracle attempts before giving up
            retry_base_delay: First backoff delay in seconds, doubled per retry
            clock: Time source for cache expiry
            sleep: Coroutine used to wait between oracle attempts
        """
        self.oracle = oracle
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self._clock = clock
        self._sleep = sleep
        self._cache: dict[str, CacheEntry] = {}
        self._stats = CacheStats()
        self.confidence_threshold = confidence_threshold
        self.cache_timeout = cache_timeout

    @property
    def confidence_threshold(self) -> float:
        return self._confidence_threshold

    @confidence_threshold.setter
    def confidence_threshold(self, threshold: float) -> None:
        if not 0 <= threshold <= 1:
            raise ValueError("Confidence threshold must be between 0 and 1")
        self._confidence_threshold = threshold

    @property
    def cache_timeout(self) -> float:
        return self._cache_timeout

    @cache_timeout.setter
    def cache_timeout(self, timeout: float) -> None:
        if not timeout >= 0:
            raise ValueError("Cache timeout must be non-negative")
        self._cache_timeout = timeout

    def meets_confidence_threshold(self, result: SemanticComparisonResult) -> bool:
        """True if the oracle said "match" with at least the threshold confidence."""
        return result.is_match and result.confidence >= self._confidence_threshold

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Semantic comparison cache cleared")

    def cache_stats(self) -> CacheStats:
        return self._stats.model_copy(update={"size": len(self._cache)})

    def _lookup(self, key: str) -> SemanticComparisonResult | None:
        entry = self._cache.get(key)
        if entry is None:
            self._stats.misses += 1
            return None
        if self._clock() - entry.timestamp > self._cache_timeout:
            del self._cache[key]
            self._stats.expirations += 1
            self._stats.misses += 1
            logger.debug("Cache entry expired: %s", key)
            return None
        self._stats.hits += 1
        return entry.result

    def _store(self, key: str, result: SemanticComparisonResult) -> None:
        self._cache[key] = CacheEntry(key=key, result=result, timestamp=self._clock())

    def _log_retry(self, retry_state: RetryCallState) -> None:
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Oracle attempt %d failed: %s. Retrying in %.1fs",
            retry_state.attempt_number,
            retry_state.outcome.exception() if retry_state.outcome else None,
            wait,
        )

    async def _ask_oracle(
        self, extracted_item: str, expected_item: str, usual_groceries: str
    ) -> SemanticComparisonResult:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(Exception),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_base_delay),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    reply = await self.oracle.judge(
                        extracted_item,
                        expected_item,
                        usual_groceries or NO_USUAL_GROCERIES,
                    )
                    parsed = parse_oracle_reply(reply)
                    if not isinstance(parsed, ParsedReply):
                        raise OracleResponseError(parsed.message)
                    return parsed.result
        except Exception as e:
            logger.error(
                "Semantic comparison failed after %d attempts: %s",
                self.max_attempts,
                e,
            )
            raise SemanticComparisonError(f"Semantic comparison failed: {e}") from e
        raise SemanticComparisonError("Failed to get a valid comparison result")

    async def compare(
        self, extracted_item: str, expected_item: str, usual_groceries: str = ""
    ) -> SemanticComparisonResult:
        """Judge whether two item names refer to the same product.

        Args:
            extracted_item: Name produced by the extractor
            expected_item: Name from the labelled test case
            usual_groceries: Newline separated list of the user's usual items,
                passed to the oracle to disambiguate brands and variants

        Returns:
            The oracle verdict, or an exact-match verdict without consulting
            the oracle when both names sanitize to the same string

        Raises:
            SemanticComparisonError: If every oracle attempt failed
        """
        sanitized_extracted = sanitize_item_name(extracted_item)
        sanitized_expected = sanitize_item_name(expected_item)

        if sanitized_extracted == sanitized_expected:
            return SemanticComparisonResult(
                is_match=True, confidence=1.0, reasoning=EXACT_MATCH_REASONING
            )

        key = cache_key(extracted_item, expected_item)
        cached = self._lookup(key)
        if cached is not None:
            logger.debug(
                'Cache hit for "%s" vs "%s"', sanitized_extracted, sanitized_expected
            )
            return cached

        logger.info('Comparing "%s" vs "%s"', sanitized_extracted, sanitized_expected)
        result = await self._ask_oracle(extracted_item, expected_item, usual_groceries)
        self._store(key, result)

        logger.info(
            "Result: %s with confidence %.2f (threshold %.2f), meets threshold: %s",
            "MATCH" if result.is_match else "NO MATCH",
            result.confidence,
            self._confidence_threshold,
            self.meets_confidence_threshold(result),
        )
        return result
