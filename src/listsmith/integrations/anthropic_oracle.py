"""Semantic comparison oracle backed by the Anthropic Messages API."""

from anthropic import AsyncAnthropic
from jinja2 import Environment, FileSystemLoader, select_autoescape

from listsmith.integrations.anthropic_extractor import DEFAULT_MODEL, default_prompts_dir


class AnthropicOracle:
    """
    Asks Claude whether two grocery item names refer to the same product.

    The reply is returned as raw text; parsing and validation are left to the
    comparator so that malformed replies go through its retry path.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 300,
        temperature: float = 0.1,
        prompts_dir: str | None = None,
    ) -> None:
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

    def _render_prompt(
        self, extracted_item: str, expected_item: str, usual_groceries: str
    ) -> str:
        template = self.jinja_env.get_template("semantic_comparison.jinja2")
        return template.render(
            EXTRACTED_ITEM=extracted_item,
            EXPECTED_ITEM=expected_item,
            USUAL_GROCERIES=usual_groceries,
        )

    async def judge(
        self, extracted_item: str, expected_item: str, usual_groceries: str
    ) -> str:
        """
        Send one comparison request and return the text of the reply.

        Args:
            extracted_item: Name produced by the extractor
            expected_item: Name from the labelled test case
            usual_groceries: Context shown to the model

        Returns:
            Concatenated text blocks of the response
        """
        prompt = self._render_prompt(extracted_item, expected_item, usual_groceries)
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
