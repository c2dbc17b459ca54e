"""Embedding/LLM provider used by the analysis core.

Wraps llama_index ``Settings.llm`` / ``Settings.embed_model`` (or explicit
instances) behind the four calls the core consumes:

    summarize(file_path, content) -> str
    embed(text) -> list[float]
    explain_symbols(symbols) -> list[SymbolExplanation]  (exactly len(symbols))
    synthesize(question, files) -> str

usage() reports the gateway's per-purpose call counts when the LLM is
wrapped in an LLMGateway.

Every upstream failure is re-raised as ProviderError. Nothing here
retries; recovery is the caller's decision.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from llama_index.core import Settings

from ..ast_parser.models import Symbol
from ..errors import ProviderError
from ..gateway import LLMGateway
from .prompts import (
    build_cohesive_explanation_prompt,
    build_file_summary_prompt,
    build_symbols_explanation_prompt,
)

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_MAX_CHARS = 2000


@dataclass
class SymbolExplanation:
    summary: str
    detailed: str
    complexity: Optional[int] = None
    placeholder: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "detailed": self.detailed,
            "complexity": self.complexity,
        }


def placeholder_explanation(position: int) -> SymbolExplanation:
    """Stand-in for a symbol the model did not explain (1-based position)."""
    return SymbolExplanation(
        summary=f"Explanation {position} unavailable",
        detailed="The model response for this symbol was missing or could not be parsed.",
        placeholder=True,
    )


def _parse_complexity(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = re.search(r"\d+", str(value))
    return int(match.group()) if match else None


def _strip_fences(raw: str) -> str:
    cleaned = raw
    if "```json" in cleaned:
        cleaned = cleaned.split("```json", 1)[1]
    elif cleaned.lstrip().startswith("```"):
        cleaned = cleaned.split("```", 1)[1]
    if "```" in cleaned:
        cleaned = cleaned.split("```", 1)[0]
    return cleaned.strip()


def parse_json_output(raw: str, opener: str = "[", closer: str = "]") -> Any:
    """Parse JSON from LLM output, stripping markdown fences.

    Falls back to the outermost ``opener``..``closer`` span. Returns None
    when nothing parses.
    """
    cleaned = _strip_fences(raw or "")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON parse failed: {e}. Attempting repair.")

    start = cleaned.find(opener)
    end = cleaned.rfind(closer)
    if start >= 0 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            pass
    return None


def normalize_explanations(parsed: Any, expected_count: int) -> List[SymbolExplanation]:
    """Coerce a parsed model response into exactly ``expected_count`` entries.

    Non-list responses, non-object items and missing tail items become
    placeholders; surplus items are dropped.
    """
    if isinstance(parsed, dict):
        # Some models wrap the array: {"explanations": [...]}
        lists = [v for v in parsed.values() if isinstance(v, list)]
        parsed = lists[0] if len(lists) == 1 else None

    items = parsed if isinstance(parsed, list) else []
    if not isinstance(parsed, list):
        logger.warning(f"Expected a JSON array of {expected_count} explanations, got {type(parsed).__name__}")
    elif len(items) != expected_count:
        logger.warning(f"Expected {expected_count} explanations, model returned {len(items)}")

    results: List[SymbolExplanation] = []
    for index in range(expected_count):
        item = items[index] if index < len(items) else None
        if not isinstance(item, dict):
            results.append(placeholder_explanation(index + 1))
            continue
        summary = str(item.get("summary") or "").strip()
        detailed = str(item.get("detailed") or "").strip()
        if not summary and not detailed:
            results.append(placeholder_explanation(index + 1))
            continue
        results.append(SymbolExplanation(
            summary=summary or f"Explanation {index + 1} unavailable",
            detailed=detailed or summary,
            complexity=_parse_complexity(item.get("complexity")),
        ))
    return results


class AnalysisProvider:
    """LLM + embedding calls for indexing, explanation and synthesis."""

    def __init__(
        self,
        llm: Any = None,
        embed_model: Any = None,
        summary_max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    ):
        self._llm = llm
        self._embed_model = embed_model
        self.summary_max_chars = summary_max_chars

    # ── Resolution ──────────────────────────────────────────────────────

    def _get_llm(self):
        llm = self._llm
        if llm is None:
            try:
                llm = Settings.llm
            except Exception as e:
                raise ProviderError(f"No LLM configured: {e}") from e
        if llm is None:
            raise ProviderError("No LLM configured")
        return llm

    def _get_embed_model(self):
        model = self._embed_model
        if model is None:
            try:
                model = Settings.embed_model
            except Exception as e:
                raise ProviderError(f"No embedding model configured: {e}") from e
        if model is None:
            raise ProviderError("No embedding model configured")
        return model

    def usage(self) -> Optional[Dict[str, Any]]:
        """Per-purpose LLM call counts, or None without a gateway-wrapped LLM."""
        try:
            llm = self._get_llm()
        except ProviderError:
            return None
        return llm.usage() if isinstance(llm, LLMGateway) else None

    # ── Raw calls ───────────────────────────────────────────────────────

    async def _complete(self, prompt: str, purpose: str) -> str:
        llm = self._get_llm()
        kwargs = {"gateway_purpose": purpose} if isinstance(llm, LLMGateway) else {}
        try:
            response = await llm.acomplete(prompt, **kwargs)
        except ProviderError:
            raise
        except Exception as e:
            status = getattr(e, "status_code", None) or getattr(e, "status", None)
            raise ProviderError(f"LLM call failed ({purpose}): {e}", status=status) from e
        return (getattr(response, "text", None) or "").strip()

    # ── Public API ──────────────────────────────────────────────────────

    async def summarize(self, file_path: str, content: str, language: str = "") -> str:
        prompt = build_file_summary_prompt(file_path, content[:self.summary_max_chars], language)
        summary = await self._complete(prompt, "index_summary")
        if not summary:
            raise ProviderError(f"Empty summary returned for {file_path}")
        return summary

    async def embed(self, text: str) -> List[float]:
        model = self._get_embed_model()
        try:
            vector = await model.aget_text_embedding(text)
        except Exception as e:
            status = getattr(e, "status_code", None) or getattr(e, "status", None)
            raise ProviderError(f"Embedding call failed: {e}", status=status) from e
        if not vector:
            raise ProviderError("Embedding call returned an empty vector")
        return [float(x) for x in vector]

    async def explain_symbols(self, symbols: List[Symbol]) -> List[SymbolExplanation]:
        """Explain a batch of symbols in one call; always len(symbols) results."""
        if not symbols:
            return []
        raw = await self._complete(build_symbols_explanation_prompt(symbols), "explain_symbols")
        parsed = parse_json_output(raw, "[", "]")
        return normalize_explanations(parsed, len(symbols))

    async def synthesize(
        self,
        question: str,
        files: List[Dict[str, str]],
        target_file_path: Optional[str] = None,
        target_symbol_name: Optional[str] = None,
    ) -> str:
        prompt = build_cohesive_explanation_prompt(
            question, files, target_file_path, target_symbol_name
        )
        logger.info(f"Synthesizing answer over {len(files)} files ({len(prompt)} chars)")
        answer = await self._complete(prompt, "synthesis")
        if not answer:
            raise ProviderError("Empty synthesis response")
        return answer
