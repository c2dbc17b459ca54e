"""Line-oriented symbol extractors for languages without a grammar binding.

Declarations are found by keyword-prefix regexes. A symbol's last line is
located by one of two block rules:

- indentation: scan forward (skipping blank lines) until a line is
  indented no deeper than the declaration;
- braces: scan forward until the matched-brace depth returns to zero,
  ignoring braces inside string, rune and comment text.
"""

import logging
import re
from typing import List, Optional, Pattern, Tuple

from .base import BaseSymbolExtractor
from .models import Symbol, source_lines

logger = logging.getLogger(__name__)


def _indent_of(line: str) -> int:
    return len(line.expandtabs(4)) - len(line.expandtabs(4).lstrip())


def _bracket_delta(line: str) -> int:
    return sum(line.count(c) for c in "([{") - sum(line.count(c) for c in ")]}")


# =============================================================================
# Indentation blocks (Python)
# =============================================================================

_PY_DEF = re.compile(r"^\s*(?:async\s+)?def\s+(\w+)\s*[\(\[]")
_PY_CLASS = re.compile(r"^\s*class\s+(\w+)")


class IndentBlockExtractor(BaseSymbolExtractor):
    """Regex + indentation extractor for Python source.

    Emits top-level functions, classes and the methods directly inside a
    class. Definitions nested in a function body belong to that function.
    """

    def get_language(self) -> str:
        return "python"

    def extract(self, content: str, file_path: str) -> List[Symbol]:
        lines = source_lines(content)
        symbols: List[Symbol] = []
        # Line ranges of emitted functions and classes
        function_ranges: List[Tuple[int, int]] = []
        class_ranges: List[Tuple[int, int, str]] = []

        for idx, line in enumerate(lines):
            def_match = _PY_DEF.match(line)
            class_match = None if def_match else _PY_CLASS.match(line)
            if not def_match and not class_match:
                continue

            line_no = idx + 1
            if any(start <= line_no <= end for start, end in function_ranges):
                continue
            enclosing = [c for c in class_ranges if c[0] <= line_no <= c[1]]

            start = self._decorator_start(lines, idx) + 1
            end = self.find_block_end(lines, idx) + 1

            if def_match:
                name = def_match.group(1)
                if enclosing:
                    parent = enclosing[-1][2]
                    symbols.append(self._make_symbol(lines, name, "method", start, end, parent))
                else:
                    symbols.append(self._make_symbol(lines, name, "function", start, end))
                function_ranges.append((start, end))
            elif not enclosing:
                name = class_match.group(1)
                symbols.append(self._make_symbol(lines, name, "class", start, end))
                class_ranges.append((start, end, name))

        return symbols

    @staticmethod
    def _decorator_start(lines: List[str], idx: int) -> int:
        indent = _indent_of(lines[idx])
        start = idx
        while start > 0:
            prev = lines[start - 1]
            if prev.strip().startswith("@") and _indent_of(prev) == indent:
                start -= 1
            else:
                break
        return start

    @staticmethod
    def find_block_end(lines: List[str], idx: int) -> int:
        """Return the 0-based index of the last line of the block at idx."""
        indent = _indent_of(lines[idx])

        # Multi-line signatures: consume until brackets balance
        end = idx
        depth = _bracket_delta(lines[idx])
        while depth > 0 and end + 1 < len(lines):
            end += 1
            depth += _bracket_delta(lines[end])

        j = end + 1
        while j < len(lines):
            line = lines[j]
            if not line.strip():
                j += 1
                continue
            if _indent_of(line) <= indent:
                break
            end = j
            j += 1
        return end


# =============================================================================
# Brace blocks (Go)
# =============================================================================

class BraceBlockExtractor(BaseSymbolExtractor):
    """Regex + brace-matching extractor.

    Subclasses supply ``patterns``: (regex, kind, name_group, parent_group).
    The first matching pattern wins for a line.
    """

    language: str = ""
    patterns: List[Tuple[Pattern, str, int, Optional[int]]] = []

    def get_language(self) -> str:
        return self.language

    def extract(self, content: str, file_path: str) -> List[Symbol]:
        lines = source_lines(content)
        symbols: List[Symbol] = []

        for idx, line in enumerate(lines):
            for pattern, kind, name_group, parent_group in self.patterns:
                match = pattern.match(line)
                if not match:
                    continue
                name = match.group(name_group)
                parent = self._clean_parent(match.group(parent_group)) if parent_group else None
                end = self.find_block_end(lines, idx) + 1
                symbols.append(self._make_symbol(lines, name, kind, idx + 1, end, parent))
                break

        return symbols

    @staticmethod
    def _clean_parent(receiver: str) -> Optional[str]:
        # "s *Server" -> "Server", "*Server[T]" -> "Server"
        parts = receiver.strip().split()
        if not parts:
            return None
        type_name = parts[-1].lstrip("*")
        return type_name.split("[", 1)[0] or None

    @staticmethod
    def find_block_end(lines: List[str], idx: int) -> int:
        """Return the 0-based index of the line closing the block opened at idx.

        A declaration that opens no brace before its parentheses balance
        ends on the line where they balance.
        """
        depth = 0
        parens = 0
        seen_open = False
        in_block_comment = False
        in_raw_string = False

        for j in range(idx, len(lines)):
            line = lines[j]
            k = 0
            while k < len(line):
                ch = line[k]
                nxt = line[k + 1] if k + 1 < len(line) else ""

                if in_block_comment:
                    if ch == "*" and nxt == "/":
                        in_block_comment = False
                        k += 2
                        continue
                    k += 1
                    continue
                if in_raw_string:
                    if ch == "`":
                        in_raw_string = False
                    k += 1
                    continue

                if ch == "/" and nxt == "/":
                    break
                if ch == "/" and nxt == "*":
                    in_block_comment = True
                    k += 2
                    continue
                if ch == "`":
                    in_raw_string = True
                elif ch in ("\"", "'"):
                    k = _skip_quoted(line, k)
                elif ch == "(":
                    parens += 1
                elif ch == ")":
                    parens -= 1
                elif ch == "{":
                    depth += 1
                    seen_open = True
                elif ch == "}":
                    depth -= 1
                    if seen_open and depth == 0:
                        return j
                k += 1

            if not seen_open and parens <= 0 and not in_block_comment and not in_raw_string:
                return j

        return len(lines) - 1


def _skip_quoted(line: str, k: int) -> int:
    """Return the index of the closing quote matching line[k]."""
    quote = line[k]
    k += 1
    while k < len(line):
        if line[k] == "\\":
            k += 2
            continue
        if line[k] == quote:
            return k
        k += 1
    return k


class GoExtractor(BraceBlockExtractor):
    """Top-level Go declarations.

    func (recv) Name(...) -> method, func Name(...) -> function,
    type X struct -> class, type X interface -> interface,
    type X <other> -> type, var/const X -> variable.
    """

    language = "go"
    patterns = [
        (re.compile(r"^func\s+\(([^)]*)\)\s*(\w+)"), "method", 2, 1),
        (re.compile(r"^func\s+(\w+)"), "function", 1, None),
        (re.compile(r"^type\s+(\w+)(?:\[[^\]]*\])?\s+struct\b"), "class", 1, None),
        (re.compile(r"^type\s+(\w+)(?:\[[^\]]*\])?\s+interface\b"), "interface", 1, None),
        (re.compile(r"^type\s+(\w+)\b"), "type", 1, None),
        (re.compile(r"^(?:var|const)\s+([A-Za-z_]\w*)"), "variable", 1, None),
    ]
