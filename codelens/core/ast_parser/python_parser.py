"""Python symbol extractor using tree-sitter.

Walks the top level of the module and class bodies. Nested functions are
part of their enclosing symbol and are not emitted separately.
"""

import logging
from typing import List, Optional

import tree_sitter
import tree_sitter_python

from .base import TreeSitterExtractor
from .heuristic_parsers import IndentBlockExtractor
from .models import Symbol, source_lines

logger = logging.getLogger(__name__)

# Create the Language object once (wraps the PyCapsule)
_PYTHON_LANGUAGE = tree_sitter.Language(tree_sitter_python.language())


class PythonExtractor(TreeSitterExtractor):
    """tree-sitter based Python extractor.

    Extracts:
    - Module-level functions -> kind="function"
    - Classes -> kind="class"
    - Functions inside class bodies -> kind="method"

    Decorated definitions start at the first decorator line. Files that
    tree-sitter cannot parse cleanly are handed to the indentation
    heuristic, which tolerates broken syntax elsewhere in the file.
    """

    def __init__(self):
        self._fallback = IndentBlockExtractor()

    def get_language(self) -> str:
        return "python"

    def get_tree_sitter_language(self, file_path: str = "") -> tree_sitter.Language:
        return _PYTHON_LANGUAGE

    def extract(self, content: str, file_path: str) -> List[Symbol]:
        tree = self.parse(content, file_path)
        if tree.root_node.has_error:
            logger.info(f"Syntax errors in {file_path}, using indentation heuristic")
            return self._fallback.extract(content, file_path)
        return self.extract_from_tree(tree, content.encode("utf-8"), source_lines(content))

    def extract_from_tree(
        self, tree: tree_sitter.Tree, source: bytes, lines: List[str]
    ) -> List[Symbol]:
        symbols: List[Symbol] = []
        for child in tree.root_node.children:
            symbols.extend(self._extract_definition(child, source, lines, parent_name=None))
        return symbols

    def _extract_definition(
        self,
        node: tree_sitter.Node,
        source: bytes,
        lines: List[str],
        parent_name: Optional[str],
    ) -> List[Symbol]:
        outer = node
        if node.type == "decorated_definition":
            node = node.child_by_field_name("definition") or self._get_decorated_inner(node)
            if node is None:
                return []

        if node.type == "function_definition":
            name = self._get_child_text(node, "name", source)
            if not name:
                return []
            start, end = self._line_range(outer)
            kind = "method" if parent_name else "function"
            return [self._make_symbol(lines, name, kind, start, end, parent_name)]

        if node.type == "class_definition":
            return self._extract_class(node, outer, source, lines)

        return []

    def _extract_class(
        self,
        node: tree_sitter.Node,
        outer: tree_sitter.Node,
        source: bytes,
        lines: List[str],
    ) -> List[Symbol]:
        """Emit the class itself followed by its methods."""
        class_name = self._get_child_text(node, "name", source)
        if not class_name:
            return []

        start, end = self._line_range(outer)
        symbols = [self._make_symbol(lines, class_name, "class", start, end)]

        body = node.child_by_field_name("body") or self._get_child_by_type(node, "block")
        if body:
            for child in body.children:
                if child.type in ("function_definition", "decorated_definition"):
                    for sym in self._extract_definition(child, source, lines, parent_name=class_name):
                        if sym.kind == "method":
                            symbols.append(sym)
        return symbols

    @staticmethod
    def _get_decorated_inner(node: tree_sitter.Node) -> Optional[tree_sitter.Node]:
        """Get the inner definition from a decorated_definition node."""
        for child in node.children:
            if child.type in ("function_definition", "class_definition"):
                return child
        return None
