"""Base interfaces for language-specific symbol extractors.

Two families implement the same ``extract(content, file_path)`` contract:

- TreeSitterExtractor: walks a full syntax tree (exact line ranges).
- Heuristic extractors (see heuristic_parsers.py): keyword-prefix
  detection plus indentation or brace matching to find block ends.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import tree_sitter

from .models import Symbol, slice_lines, source_lines

logger = logging.getLogger(__name__)


class BaseSymbolExtractor(ABC):
    """Strategy interface: source text in, flat list of symbols out."""

    @abstractmethod
    def get_language(self) -> str:
        """Return the language identifier (e.g., 'python', 'go')."""
        ...

    @abstractmethod
    def extract(self, content: str, file_path: str) -> List[Symbol]:
        """Extract symbols from file content.

        Args:
            content: Full file text
            file_path: Relative file path (used for logging and grammar choice)

        Returns:
            Symbols in source order
        """
        ...

    def _make_symbol(
        self,
        lines: List[str],
        name: str,
        kind: str,
        line_start: int,
        line_end: int,
        parent_name: Optional[str] = None,
    ) -> Symbol:
        line_end = max(line_start, min(line_end, len(lines)))
        return Symbol(
            name=name,
            kind=kind,
            line_start=line_start,
            line_end=line_end,
            code=slice_lines(lines, line_start, line_end),
            language=self.get_language(),
            parent_name=parent_name,
        )


class TreeSitterExtractor(BaseSymbolExtractor):
    """Shared tree-sitter plumbing; subclasses walk the tree."""

    @abstractmethod
    def get_tree_sitter_language(self, file_path: str = "") -> tree_sitter.Language:
        """Return the tree-sitter Language object for this file."""
        ...

    @abstractmethod
    def extract_from_tree(
        self, tree: tree_sitter.Tree, source: bytes, lines: List[str]
    ) -> List[Symbol]:
        ...

    def parse(self, content: str, file_path: str = "") -> tree_sitter.Tree:
        parser = tree_sitter.Parser(self.get_tree_sitter_language(file_path))
        return parser.parse(content.encode("utf-8"))

    def extract(self, content: str, file_path: str) -> List[Symbol]:
        tree = self.parse(content, file_path)
        if tree.root_node.has_error:
            logger.debug(f"Tree-sitter reported parse errors in {file_path}")
        return self.extract_from_tree(tree, content.encode("utf-8"), source_lines(content))

    # =========================================================================
    # Helper methods
    # =========================================================================

    @staticmethod
    def _get_child_text(node: tree_sitter.Node, field_name: str, source: bytes) -> Optional[str]:
        """Get text content of a named child field."""
        child = node.child_by_field_name(field_name)
        if child:
            return source[child.start_byte:child.end_byte].decode("utf-8", errors="replace")
        return None

    @staticmethod
    def _get_child_by_type(node: tree_sitter.Node, type_name: str) -> Optional[tree_sitter.Node]:
        """Find first child of a given type."""
        for child in node.children:
            if child.type == type_name:
                return child
        return None

    @staticmethod
    def _line_range(node: tree_sitter.Node) -> tuple:
        return node.start_point.row + 1, node.end_point.row + 1
