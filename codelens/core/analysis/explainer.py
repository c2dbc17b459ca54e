"""Batched symbol explanation and cohesive synthesis.

SymbolExplainer walks a file's symbols in fixed-size batches, asks the
provider for one explanation per symbol, and persists every batch as
soon as it returns. A CancellationToken is checked before each batch so
a cancelled job stops between provider calls rather than after the
whole file.
"""

import logging
from typing import Any, Dict, List, Optional

from ..ast_parser.models import ParsedFile
from ..ast_parser.utils import calculate_complexity
from ..errors import AnalysisCancelled, ProviderError
from ..provider import placeholder_explanation
from .job_store import JobStore
from .models import AnalysisStatus

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n... (truncated)"


class CancellationToken:
    """Re-reads the job status from the store at each checkpoint.

    A job that was cancelled, or deleted by a newer run of the same type,
    raises AnalysisCancelled.
    """

    def __init__(self, store: JobStore, report_id: str):
        self._store = store
        self.report_id = report_id

    def check(self) -> None:
        status = self._store.get_status(self.report_id)
        if status is None or status == AnalysisStatus.CANCELLED:
            raise AnalysisCancelled(self.report_id)


class SymbolExplainer:
    """Explain and persist the symbols of parsed files."""

    def __init__(self, provider, store: JobStore, batch_size: int = 5, max_symbols: int = 50):
        self._provider = provider
        self._store = store
        self.batch_size = batch_size
        self.max_symbols = max_symbols

    async def explain_file(
        self,
        report_id: str,
        parsed: ParsedFile,
        token: Optional[CancellationToken] = None,
    ) -> int:
        """Explain up to ``max_symbols`` symbols of one file.

        Returns the number of symbols explained and persisted. A batch the
        provider fails on contributes nothing; later batches still run.
        """
        symbols = parsed.symbols[:self.max_symbols]
        explained = 0

        for start in range(0, len(symbols), self.batch_size):
            if token is not None:
                token.check()
            batch = symbols[start:start + self.batch_size]
            try:
                explanations = await self._provider.explain_symbols(batch)
            except ProviderError as e:
                logger.warning(
                    f"Explanation batch {start // self.batch_size + 1} failed for "
                    f"{parsed.file_path}: {e}"
                )
                continue

            # The job may have been cancelled while the provider call was in flight
            if token is not None:
                token.check()
            for symbol, explanation in zip(batch, explanations):
                if explanation.complexity is None:
                    explanation.complexity = calculate_complexity(symbol.code)

            explained += self._store.add_explanations(report_id, parsed.file_path, batch, explanations)

        logger.debug(f"Explained {explained}/{len(symbols)} symbols in {parsed.file_path}")
        return explained

    async def explain_unpersisted(self, parsed: ParsedFile) -> List[Dict[str, Any]]:
        """Explain a file's symbols without writing anything.

        Failed batches yield placeholder entries so every symbol is listed.
        """
        symbols = parsed.symbols[:self.max_symbols]
        items: List[Dict[str, Any]] = []
        for start in range(0, len(symbols), self.batch_size):
            batch = symbols[start:start + self.batch_size]
            try:
                explanations = await self._provider.explain_symbols(batch)
            except ProviderError as e:
                logger.warning(f"Explanation failed for {parsed.file_path}: {e}")
                explanations = [placeholder_explanation(i + 1) for i in range(len(batch))]

            for symbol, explanation in zip(batch, explanations):
                entry = symbol.to_dict()
                entry.update(explanation.to_dict())
                if entry["complexity"] is None:
                    entry["complexity"] = calculate_complexity(symbol.code)
                items.append(entry)
        return items


def synthesis_budget(file_count: int, min_chars: int, max_chars: int, total_chars: int) -> int:
    """Per-file character budget for the synthesis prompt.

    Shrinks as more files are included, never below ``min_chars`` and never
    above ``max_chars``.
    """
    if file_count <= 0:
        return max_chars
    return min(max_chars, max(min_chars, total_chars // file_count))


def truncate(content: str, budget: int) -> str:
    if len(content) <= budget:
        return content
    return content[:budget] + TRUNCATION_MARKER


def build_synthesis_files(
    parsed_files: List[ParsedFile],
    min_chars: int,
    max_chars: int,
    total_chars: int,
) -> List[Dict[str, str]]:
    """Synthesis inputs ``{filePath, language, content}`` under the char budget."""
    budget = synthesis_budget(len(parsed_files), min_chars, max_chars, total_chars)
    return [
        {
            "filePath": parsed.file_path,
            "language": parsed.language,
            "content": truncate(parsed.content, budget),
        }
        for parsed in parsed_files
    ]
