"""JavaScript symbol extractor using tree-sitter.

Walks the top level of the program (including ``export`` wrappers) and
class bodies.
"""

import logging
from typing import List, Optional

import tree_sitter
import tree_sitter_javascript

from .base import TreeSitterExtractor
from .models import Symbol

logger = logging.getLogger(__name__)

_JS_LANGUAGE = tree_sitter.Language(tree_sitter_javascript.language())

_FUNCTION_VALUES = ("arrow_function", "function_expression", "function", "generator_function")


class JavaScriptExtractor(TreeSitterExtractor):
    """tree-sitter based JavaScript extractor.

    Extracts:
    - function_declaration -> kind="function"
    - class_declaration -> kind="class", method_definition -> kind="method"
    - const/let/var bound to a function expression -> kind="variable"
    - Exported variants of all the above (range includes ``export``)
    """

    def get_language(self) -> str:
        return "javascript"

    def get_tree_sitter_language(self, file_path: str = "") -> tree_sitter.Language:
        return _JS_LANGUAGE

    def extract_from_tree(
        self, tree: tree_sitter.Tree, source: bytes, lines: List[str]
    ) -> List[Symbol]:
        symbols: List[Symbol] = []
        for child in tree.root_node.children:
            if child.type == "export_statement":
                for inner in child.children:
                    symbols.extend(self._extract_declaration(inner, source, lines, outer=child))
            else:
                symbols.extend(self._extract_declaration(child, source, lines, outer=child))
        return symbols

    def _extract_declaration(
        self,
        node: tree_sitter.Node,
        source: bytes,
        lines: List[str],
        outer: tree_sitter.Node,
    ) -> List[Symbol]:
        """Dispatch one top-level node. Subclasses extend the node types."""
        if node.type in ("function_declaration", "generator_function_declaration"):
            sym = self._named_symbol(node, outer, source, lines, "function")
            return [sym] if sym else []
        if node.type in ("class_declaration", "abstract_class_declaration", "class"):
            return self._extract_class(node, outer, source, lines)
        if node.type in ("lexical_declaration", "variable_declaration"):
            return self._extract_assigned_functions(node, outer, source, lines)
        return []

    def _named_symbol(
        self,
        node: tree_sitter.Node,
        outer: tree_sitter.Node,
        source: bytes,
        lines: List[str],
        kind: str,
    ) -> Optional[Symbol]:
        name = self._get_child_text(node, "name", source)
        if not name:
            return None
        start, end = self._line_range(outer)
        return self._make_symbol(lines, name, kind, start, end)

    def _extract_assigned_functions(
        self,
        node: tree_sitter.Node,
        outer: tree_sitter.Node,
        source: bytes,
        lines: List[str],
    ) -> List[Symbol]:
        """Arrow functions or function expressions assigned to variables."""
        symbols: List[Symbol] = []
        for child in node.children:
            if child.type != "variable_declarator":
                continue
            value_node = child.child_by_field_name("value")
            if value_node is None or value_node.type not in _FUNCTION_VALUES:
                continue
            name = self._get_child_text(child, "name", source)
            if not name:
                continue
            start, end = self._line_range(outer)
            symbols.append(self._make_symbol(lines, name, "variable", start, end))
        return symbols

    def _extract_class(
        self,
        node: tree_sitter.Node,
        outer: tree_sitter.Node,
        source: bytes,
        lines: List[str],
    ) -> List[Symbol]:
        class_name = self._get_child_text(node, "name", source)
        if not class_name:
            return []

        start, end = self._line_range(outer)
        symbols = [self._make_symbol(lines, class_name, "class", start, end)]

        body = node.child_by_field_name("body") or self._get_child_by_type(node, "class_body")
        if body:
            for child in body.children:
                if child.type in ("method_definition", "abstract_method_signature"):
                    name = self._get_child_text(child, "name", source)
                    if name:
                        m_start, m_end = self._line_range(child)
                        symbols.append(
                            self._make_symbol(lines, name, "method", m_start, m_end, class_name)
                        )
        return symbols
