"""Symbol extractor data models.

Pure data containers. Line numbers are 1-based and inclusive; ``code`` is
always the exact slice of the file's lines between them.
"""

from dataclasses import dataclass, field
from typing import List, Optional

# Recognized symbol kinds
SYMBOL_KINDS = ("function", "method", "class", "interface", "type", "variable")


def source_lines(content: str) -> List[str]:
    """Split file content the same way tree-sitter counts rows."""
    return content.split("\n")


def slice_lines(lines: List[str], line_start: int, line_end: int) -> str:
    """Return the text of 1-based inclusive lines [line_start, line_end]."""
    return "\n".join(lines[line_start - 1:line_end])


@dataclass
class Symbol:
    """A named, line-ranged code unit extracted from one source file."""

    name: str
    kind: str  # one of SYMBOL_KINDS
    line_start: int
    line_end: int
    code: str
    language: str
    parent_name: Optional[str] = None  # For methods: enclosing class

    @property
    def line_count(self) -> int:
        return self.line_end - self.line_start + 1

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.kind,
            "lineStart": self.line_start,
            "lineEnd": self.line_end,
            "language": self.language,
            "parentName": self.parent_name,
        }


@dataclass
class ParseError:
    """An error encountered while reading or parsing a file."""

    file_path: str
    line: int
    message: str
    severity: str = "warning"  # "warning" | "error"


@dataclass
class ParsedFile:
    """Extraction output for a single file."""

    file_path: str  # Relative to project root
    language: str
    content: str
    symbols: List[Symbol] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)

    @property
    def line_count(self) -> int:
        if not self.content:
            return 0
        return len(source_lines(self.content.rstrip("\n")))
