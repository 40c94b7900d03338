"""Listsmith integrations module."""

from listsmith.integrations.anthropic_extractor import (
    ExtractionError,
    ExtractionIncompleteError,
    ExtractionRefusedError,
    GroceryExtractor,
)
from listsmith.integrations.anthropic_oracle import AnthropicOracle

__all__ = [
    "AnthropicOracle",
    "GroceryExtractor",
    "ExtractionError",
    "ExtractionRefusedError",
    "ExtractionIncompleteError",
]
