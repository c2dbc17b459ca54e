"""TypeScript symbol extractor using tree-sitter.

Extends the JavaScript walk with interfaces and type aliases. ``.tsx``
files are parsed with the TSX grammar.
"""

import logging
from typing import List

import tree_sitter
import tree_sitter_typescript

from .javascript_parser import JavaScriptExtractor
from .models import Symbol

logger = logging.getLogger(__name__)

_TS_LANGUAGE = tree_sitter.Language(tree_sitter_typescript.language_typescript())
_TSX_LANGUAGE = tree_sitter.Language(tree_sitter_typescript.language_tsx())


class TypeScriptExtractor(JavaScriptExtractor):
    """tree-sitter based TypeScript extractor.

    Extracts everything JavaScriptExtractor does, plus:
    - interface_declaration -> kind="interface"
    - type_alias_declaration -> kind="type"
    """

    def get_language(self) -> str:
        return "typescript"

    def get_tree_sitter_language(self, file_path: str = "") -> tree_sitter.Language:
        if file_path.endswith(".tsx"):
            return _TSX_LANGUAGE
        return _TS_LANGUAGE

    def _extract_declaration(
        self,
        node: tree_sitter.Node,
        source: bytes,
        lines: List[str],
        outer: tree_sitter.Node,
    ) -> List[Symbol]:
        if node.type == "interface_declaration":
            sym = self._named_symbol(node, outer, source, lines, "interface")
            return [sym] if sym else []
        if node.type == "type_alias_declaration":
            sym = self._named_symbol(node, outer, source, lines, "type")
            return [sym] if sym else []
        return super()._extract_declaration(node, source, lines, outer)
