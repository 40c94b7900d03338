"""Anthropic API integration for grocery action extraction using structured outputs."""

import time
from pathlib import Path

from anthropic import AsyncAnthropic
from anthropic.types.beta import (
    BetaCacheControlEphemeralParam,
    BetaMessageParam,
    BetaTextBlockParam,
)
from jinja2 import Environment, FileSystemLoader, select_autoescape
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
)

from listsmith.models import ActionRecord, ExtractedItems, ExtractionResult

DEFAULT_MODEL = "claude-haiku-4-5"


class ExtractionError(Exception):
    """Base exception for extraction errors."""


class ExtractionRefusedError(ExtractionError):
    """Raised when the model refuses to process the request."""


class ExtractionIncompleteError(ExtractionError):
    """Raised when the response is truncated due to token limits."""


def default_prompts_dir() -> str:
    return str(Path(__file__).parent.parent / "prompts")


class GroceryExtractor:
    """
    Anthropic-powered extractor turning a transcript into grocery action records.

    Uses Claude's structured outputs feature (beta) so the reply is validated
    against the ExtractedItems Pydantic model before it reaches the caller.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2048,
        temperature: float = 0.0,
        prompts_dir: str | None = None,
    ) -> None:
        """
        Initialize the grocery extractor.

        Args:
            api_key: Anthropic API key
            model: Model to use (default: claude-haiku-4-5)
            max_tokens: Maximum tokens for response (default: 2048)
            temperature: Sampling temperature (default: 0.0 for deterministic)
            prompts_dir: Directory containing Jinja2 templates
                (default: the package's prompts/ directory)
        """
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        self.jinja_env = Environment(
            loader=FileSystemLoader(prompts_dir or default_prompts_dir()),
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _render_prompts(self, transcript: str, usual_groceries: str) -> tuple[str, str]:
        """
        Render system and user prompts from Jinja2 templates.

        Args:
            transcript: Utterance to extract actions from
            usual_groceries: Newline separated list of the user's usual items

        Returns:
            Tuple of (system_prompt, user_prompt)
        """
        system_template = self.jinja_env.get_template("grocery_extraction_system.jinja2")
        user_template = self.jinja_env.get_template("grocery_extraction_user.jinja2")

        system_prompt = system_template.render(USUAL_GROCERIES=usual_groceries)
        user_prompt = user_template.render(TRANSCRIPT=transcript)

        return system_prompt, user_prompt

    async def extract_actions(
        self,
        transcript: str,
        usual_groceries: str = "",
        max_tokens: int | None = None,
    ) -> ExtractionResult:
        """
        Extract grocery action records from a transcript.

        Args:
            transcript: Utterance in any language
            usual_groceries: Newline separated list of the user's usual items
            max_tokens: Override default max_tokens if specified

        Returns:
            ExtractionResult containing the action records and usage metadata

        Raises:
            ValueError: If the transcript is empty
            ExtractionRefusedError: If the model refuses the request
            ExtractionIncompleteError: If response is truncated
            Exception: For other API errors (after retries)
        """
        if not transcript or not transcript.strip():
            raise ValueError("Transcript must not be empty")
        return await self._extract(transcript, usual_groceries, max_tokens)

    @retry(
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _extract(
        self, transcript: str, usual_groceries: str, max_tokens: int | None
    ) -> ExtractionResult:
        start_time = time.time()

        system_prompt, user_prompt = self._render_prompts(transcript, usual_groceries)
        messages: list[BetaMessageParam] = [{"role": "user", "content": user_prompt}]

        response = await self.client.beta.messages.parse(
            model=self.model,
            max_tokens=max_tokens or self.max_tokens,
            temperature=self.temperature,
            betas=["structured-outputs-2025-11-13"],
            system=[
                BetaTextBlockParam(
                    type="text",
                    text=system_prompt,
                    cache_control=BetaCacheControlEphemeralParam(type="ephemeral"),
                )
            ],
            messages=messages,
            output_format=ExtractedItems,
        )

        if response.stop_reason == "refusal":
            raise ExtractionRefusedError("Model refused to process the request")

        if response.stop_reason == "max_tokens":
            raise ExtractionIncompleteError(
                "Response truncated due to token limit. Try increasing max_tokens."
            )

        extracted: ExtractedItems = response.parsed_output  # type: ignore
        items = [
            ActionRecord(
                item=record.item.strip(),
                quantity=record.quantity,
                action=record.action or "add",
                measurement=record.measurement,
            )
            for record in extracted.items
            if record.item.strip()
        ]

        return ExtractionResult(
            items=items,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            cache_creation_input_tokens=response.usage.cache_creation_input_tokens or 0,
            cache_read_input_tokens=response.usage.cache_read_input_tokens or 0,
            processing_time=time.time() - start_time,
        )
