"""Symbol extractor utilities.

Directory filtering, project walking and complexity scoring.
"""

import os
import re
from typing import Iterable, Iterator, List, Optional, Tuple

# Directories to skip during file walking
SKIP_DIRECTORIES = frozenset({
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    ".turbo",
    "coverage",
    ".nyc_output",
    "__pycache__",
    "venv",
    ".venv",
    ".tox",
    ".mypy_cache",
    ".pytest_cache",
})

# Branch points counted by calculate_complexity
_COMPLEXITY_PATTERNS = [
    re.compile(r"\bif\b"),
    re.compile(r"\belif\b"),
    re.compile(r"\bwhile\b"),
    re.compile(r"\bfor\b"),
    re.compile(r"\bswitch\b"),
    re.compile(r"\bmatch\b(?=\s+\S.*:\s*$)", re.MULTILINE),
    re.compile(r"\bcase\b"),
    re.compile(r"\bcatch\b"),
    re.compile(r"\bexcept\b"),
    re.compile(r"(?<!\?)\?(?![?.:])"),
    re.compile(r"&&"),
    re.compile(r"\|\|"),
    re.compile(r"\band\b"),
    re.compile(r"\bor\b"),
]


def should_skip_directory(dir_name: str) -> bool:
    """Check if a directory should be skipped during file walking."""
    return dir_name in SKIP_DIRECTORIES


def walk_source_files(project_root: str) -> Iterator[Tuple[str, str]]:
    """Yield (absolute_path, relative_path) for every file, in sorted order.

    Relative paths use forward slashes. Skipped directories are pruned.
    """
    for dirpath, dirnames, filenames in os.walk(project_root):
        dirnames[:] = sorted(d for d in dirnames if not should_skip_directory(d))
        for filename in sorted(filenames):
            abs_path = os.path.join(dirpath, filename)
            rel_path = os.path.relpath(abs_path, project_root).replace(os.sep, "/")
            yield abs_path, rel_path


def filter_by_language(
    paths: Iterable[Tuple[str, str]],
    languages: Optional[List[str]],
    registry,
) -> Iterator[Tuple[str, str, str]]:
    """Keep files whose detected language is in ``languages`` (None = any)."""
    allowed = set(languages) if languages else None
    for abs_path, rel_path in paths:
        language = registry.detect(rel_path)
        if language is None:
            continue
        if allowed is not None and language not in allowed:
            continue
        yield abs_path, rel_path, language


def calculate_complexity(code: str) -> int:
    """Approximate cyclomatic complexity: 1 + number of branch points.

    ``else if`` is counted once through its ``if``.
    """
    complexity = 1
    for pattern in _COMPLEXITY_PATTERNS:
        complexity += len(pattern.findall(code))
    return complexity
