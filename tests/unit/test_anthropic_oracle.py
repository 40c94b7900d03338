"""Unit tests for the Anthropic semantic comparison oracle."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from listsmith.integrations.anthropic_oracle import AnthropicOracle
from listsmith.matching import SemanticComparator

pytestmark = pytest.mark.unit


@pytest.fixture
def api_key():
    return "sk-test-key-12345"


def text_block(text):
    block = MagicMock()
    block.type = "text"
    block.text = text
    return block


def make_response(*blocks):
    response = MagicMock()
    response.content = list(blocks)
    return response


class TestAnthropicOracle:
    def test_defaults(self, api_key):
        oracle = AnthropicOracle(api_key=api_key)
        assert oracle.model == "claude-haiku-4-5"
        assert oracle.max_tokens == 300
        assert oracle.temperature == 0.1

    def test_prompt_rendering(self, api_key):
        oracle = AnthropicOracle(api_key=api_key)

        prompt = oracle._render_prompt("tomato sauce", "pasta sauce", "milk\neggs")

        assert "EXTRACTED ITEM: tomato sauce" in prompt
        assert "EXPECTED ITEM: pasta sauce" in prompt
        assert "milk\neggs" in prompt
        assert "isMatch" in prompt

    def test_prompt_is_not_html_escaped(self, api_key):
        oracle = AnthropicOracle(api_key=api_key)

        prompt = oracle._render_prompt("M&M's", "chocolate <candy>", "")

        assert "M&M's" in prompt
        assert "chocolate <candy>" in prompt

    @pytest.mark.asyncio
    async def test_judge_returns_concatenated_text(self, api_key, mocker):
        oracle = AnthropicOracle(api_key=api_key)
        other = MagicMock()
        other.type = "thinking"
        mock_create = AsyncMock(
            return_value=make_response(
                text_block('{"isMatch": true, '), other, text_block('"confidence": 0.9}')
            )
        )
        mocker.patch.object(oracle.client.messages, "create", mock_create)

        reply = await oracle.judge("tomato sauce", "pasta sauce", "milk")

        assert reply == '{"isMatch": true, "confidence": 0.9}'
        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["model"] == "claude-haiku-4-5"
        assert call_kwargs["max_tokens"] == 300
        assert call_kwargs["temperature"] == 0.1
        assert call_kwargs["messages"][0]["role"] == "user"
        assert "pasta sauce" in call_kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_works_with_comparator(self, api_key, mocker):
        oracle = AnthropicOracle(api_key=api_key)
        reply = (
            "Here is my answer:\n"
            '{"isMatch": true, "confidence": 0.92, "reasoning": "Both are pasta sauces"}'
        )
        mock_create = AsyncMock(return_value=make_response(text_block(reply)))
        mocker.patch.object(oracle.client.messages, "create", mock_create)
        comparator = SemanticComparator(oracle, retry_base_delay=0)

        result = await comparator.compare("tomato sauce", "pasta sauce")

        assert result.is_match is True
        assert result.confidence == 0.92
        assert comparator.meets_confidence_threshold(result)
        prompt = mock_create.call_args.kwargs["messages"][0]["content"]
        assert "No usual groceries provided" in prompt
