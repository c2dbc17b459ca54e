"""Embedding/LLM provider: prompts, response parsing and the provider facade."""

from .provider import (
    AnalysisProvider,
    SymbolExplanation,
    normalize_explanations,
    parse_json_output,
    placeholder_explanation,
)

__all__ = [
    "AnalysisProvider",
    "SymbolExplanation",
    "normalize_explanations",
    "parse_json_output",
    "placeholder_explanation",
]
