"""Heuristic code-quality recommendations.

Each check looks at one symbol or one file and emits zero or one
Recommendation. No provider calls; everything here is a pure function of
the parsed files.
"""

import logging
import re
from collections import Counter
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..ast_parser.models import ParsedFile, Symbol
from ..ast_parser.utils import calculate_complexity
from .models import Priority, Recommendation, RecommendationCategory

logger = logging.getLogger(__name__)

# Thresholds
HIGH_COMPLEXITY = 10
MEDIUM_COMPLEXITY = 5
MAX_FUNCTION_LINES = 50
MAX_PARAMETERS = 5
MAX_NESTING = 4
MAX_FILE_LINES = 500
MAX_FUNCTIONS_PER_FILE = 20
MIN_COMMENT_RATIO = 0.1
COMMENT_RATIO_MIN_LINES = 100

SNIPPET_LINES = 10

CALLABLE_KINDS = frozenset({"function", "method", "variable"})

_COMMENT_LINE = re.compile(r"^\s*(#|//|/\*|\*|\"\"\"|''')")
_STRING = re.compile(r"\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*'|`(?:\\.|[^`\\])*`")
_SELF_PARAMS = frozenset({"self", "cls"})
_DECORATOR = re.compile(r"@[ \t]*[\w.]+[ \t]*")
_GO_RECEIVER = re.compile(r"func\s*\(")


def _snippet(code: str) -> str:
    lines = code.split("\n")
    if len(lines) <= SNIPPET_LINES:
        return code
    return "\n".join(lines[:SNIPPET_LINES]) + "\n..."


def _make(
    rule: str,
    category: RecommendationCategory,
    priority: Priority,
    title: str,
    description: str,
    suggestion: str,
    impact: str,
    file_path: str,
    symbol: Optional[Symbol] = None,
) -> Recommendation:
    return Recommendation(
        id=str(uuid4()),
        rule=rule,
        category=category,
        priority=priority,
        title=title,
        description=description,
        file_path=file_path,
        suggestion=suggestion,
        impact=impact,
        line_start=symbol.line_start if symbol else None,
        line_end=symbol.line_end if symbol else None,
        code_snippet=_snippet(symbol.code) if symbol else None,
    )


# ── Measurements ─────────────────────────────────────────────────────────

def _group_end(text: str, start: int) -> int:
    """Index just past the bracket group opened at ``text[start]``."""
    depth = 0
    for i in range(start, len(text)):
        if text[i] in "([{":
            depth += 1
        elif text[i] in ")]}":
            depth -= 1
            if depth == 0:
                return i + 1
    return len(text)


def _declaration(code: str) -> str:
    """Declaration text with string literals blanked, leading decorators
    and a Go method receiver removed."""
    text = _STRING.sub('""', code).lstrip()
    while True:
        match = _DECORATOR.match(text)
        if not match:
            break
        end = match.end()
        if text.startswith("(", end):
            end = _group_end(text, end)
        text = text[end:].lstrip()
    receiver = _GO_RECEIVER.match(text)
    if receiver:
        text = text[_group_end(text, receiver.end() - 1):]
    return text


def count_parameters(code: str) -> int:
    """Parameters in the first parenthesised list of a declaration.

    ``self`` / ``cls`` are not counted. Nested brackets (defaults, type
    annotations) do not split parameters. Decorator arguments and a Go
    receiver are not part of the list.
    """
    text = _declaration(code)
    start = text.find("(")
    if start < 0:
        return 0
    depth = 0
    params: List[str] = []
    current = []
    prev = ""
    for ch in text[start:]:
        # "<" only opens a generic argument list; "=>" is an arrow
        opens = ch in "([{" or (ch == "<" and (prev.isalnum() or prev == "_"))
        closes = ch in ")]}" or (ch == ">" and prev != "=" and depth > 1)
        prev = ch
        if opens:
            depth += 1
            if depth == 1:
                continue
        elif closes:
            depth -= 1
            if depth == 0:
                params.append("".join(current))
                break
        if depth == 1 and ch == ",":
            params.append("".join(current))
            current = []
            continue
        current.append(ch)

    names = [p.strip() for p in params if p.strip()]
    return sum(1 for p in names if p.split(":")[0].strip() not in _SELF_PARAMS)


def nesting_depth(symbol: Symbol) -> int:
    """Deepest block nesting inside a symbol.

    Python counts indentation levels below the declaration line; brace
    languages count open ``{`` / ``(`` outside strings.
    """
    if symbol.language == "python":
        return _indent_depth(symbol.code)
    return _brace_depth(symbol.code)


def _indent_depth(code: str) -> int:
    lines = [l.expandtabs(4) for l in code.split("\n")]
    if not lines:
        return 0
    base = len(lines[0]) - len(lines[0].lstrip())
    indents = sorted({
        len(l) - len(l.lstrip())
        for l in lines[1:]
        if l.strip() and not _COMMENT_LINE.match(l)
    })
    deeper = [i for i in indents if i > base]
    if not deeper:
        return 0
    steps = [b - a for a, b in zip([base] + deeper, deeper)]
    unit = min(s for s in steps if s > 0)
    return max((i - base) // unit for i in deeper)


def _brace_depth(code: str) -> int:
    depth = deepest = 0
    for line in code.split("\n"):
        if _COMMENT_LINE.match(line):
            continue
        for ch in _STRING.sub('""', line.split("//", 1)[0]):
            if ch in "{(":
                depth += 1
                deepest = max(deepest, depth)
            elif ch in "})":
                depth = max(depth - 1, 0)
    return deepest


def comment_ratio(content: str) -> float:
    lines = [l for l in content.split("\n") if l.strip()]
    if not lines:
        return 0.0
    comments = sum(1 for l in lines if _COMMENT_LINE.match(l))
    return comments / len(lines)


# ── Checks ───────────────────────────────────────────────────────────────

def check_complexity(file_path: str, symbol: Symbol) -> Optional[Recommendation]:
    complexity = calculate_complexity(symbol.code)
    if complexity > HIGH_COMPLEXITY:
        priority = Priority.HIGH
    elif complexity > MEDIUM_COMPLEXITY:
        priority = Priority.MEDIUM
    else:
        return None
    return _make(
        "complex-function",
        RecommendationCategory.MAINTAINABILITY,
        priority,
        f"High complexity in {symbol.name}",
        f"{symbol.kind.capitalize()} '{symbol.name}' has a cyclomatic complexity of {complexity}.",
        "Split the logic into smaller functions or replace branching with lookup tables.",
        "Complex code is harder to test and more likely to hide defects.",
        file_path,
        symbol,
    )


def check_length(file_path: str, symbol: Symbol) -> Optional[Recommendation]:
    if symbol.line_count <= MAX_FUNCTION_LINES:
        return None
    return _make(
        "long-function",
        RecommendationCategory.MAINTAINABILITY,
        Priority.MEDIUM,
        f"Long {symbol.kind}: {symbol.name}",
        f"'{symbol.name}' spans {symbol.line_count} lines.",
        f"Keep functions under {MAX_FUNCTION_LINES} lines by extracting helpers.",
        "Long functions usually do several things and are hard to review.",
        file_path,
        symbol,
    )


def check_parameters(file_path: str, symbol: Symbol) -> Optional[Recommendation]:
    count = count_parameters(symbol.code)
    if count <= MAX_PARAMETERS:
        return None
    return _make(
        "too-many-parameters",
        RecommendationCategory.BEST_PRACTICES,
        Priority.MEDIUM,
        f"Too many parameters in {symbol.name}",
        f"'{symbol.name}' takes {count} parameters.",
        "Group related parameters into an object or split the function.",
        "Long parameter lists are easy to call incorrectly.",
        file_path,
        symbol,
    )


def check_nesting(file_path: str, symbol: Symbol) -> Optional[Recommendation]:
    depth = nesting_depth(symbol)
    if depth <= MAX_NESTING:
        return None
    return _make(
        "deep-nesting",
        RecommendationCategory.MAINTAINABILITY,
        Priority.HIGH,
        f"Deep nesting in {symbol.name}",
        f"'{symbol.name}' nests blocks {depth} levels deep.",
        "Use early returns and extract inner blocks into functions.",
        "Deeply nested code is hard to follow and to test.",
        file_path,
        symbol,
    )


SYMBOL_CHECKS = (check_complexity, check_length, check_parameters, check_nesting)


def check_file_size(parsed: ParsedFile) -> Optional[Recommendation]:
    if parsed.line_count <= MAX_FILE_LINES:
        return None
    return _make(
        "large-file",
        RecommendationCategory.MAINTAINABILITY,
        Priority.MEDIUM,
        "Large file",
        f"{parsed.file_path} has {parsed.line_count} lines.",
        "Split the file into cohesive modules.",
        "Large files slow down navigation and review.",
        parsed.file_path,
    )


def check_function_count(parsed: ParsedFile) -> Optional[Recommendation]:
    count = sum(1 for s in parsed.symbols if s.kind in ("function", "method"))
    if count <= MAX_FUNCTIONS_PER_FILE:
        return None
    return _make(
        "many-functions",
        RecommendationCategory.MAINTAINABILITY,
        Priority.LOW,
        "Many functions in one file",
        f"{parsed.file_path} defines {count} functions.",
        "Group related functions into separate modules.",
        "Files with many responsibilities are harder to change safely.",
        parsed.file_path,
    )


def check_comment_ratio(parsed: ParsedFile) -> Optional[Recommendation]:
    if parsed.line_count <= COMMENT_RATIO_MIN_LINES:
        return None
    ratio = comment_ratio(parsed.content)
    if ratio >= MIN_COMMENT_RATIO:
        return None
    return _make(
        "low-comment-ratio",
        RecommendationCategory.BEST_PRACTICES,
        Priority.LOW,
        "Few comments",
        f"Only {ratio:.0%} of the non-blank lines in {parsed.file_path} are comments.",
        "Document non-obvious logic and public interfaces.",
        "Undocumented code takes longer to understand.",
        parsed.file_path,
    )


FILE_CHECKS = (check_file_size, check_function_count, check_comment_ratio)


# ── Public API ───────────────────────────────────────────────────────────

def analyze_file(parsed: ParsedFile) -> List[Recommendation]:
    found: List[Recommendation] = []
    for symbol in parsed.symbols:
        if symbol.kind not in CALLABLE_KINDS:
            continue
        for check in SYMBOL_CHECKS:
            rec = check(parsed.file_path, symbol)
            if rec is not None:
                found.append(rec)
    for check in FILE_CHECKS:
        rec = check(parsed)
        if rec is not None:
            found.append(rec)
    return found


def generate_recommendations(parsed_files: List[ParsedFile]) -> List[Recommendation]:
    found: List[Recommendation] = []
    for parsed in parsed_files:
        found.extend(analyze_file(parsed))
    logger.info(f"Generated {len(found)} recommendations across {len(parsed_files)} files")
    return found


def summarize_recommendations(recommendations: List[Recommendation]) -> Dict[str, Any]:
    """Result payload ``{recommendations, totalRecommendations, byPriority}``."""
    counts = Counter(r.priority for r in recommendations)
    return {
        "recommendations": [r.to_dict() for r in recommendations],
        "totalRecommendations": len(recommendations),
        "byPriority": {p.value: counts.get(p, 0) for p in Priority},
    }
