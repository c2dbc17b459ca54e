"""CodeLens symbol extractor: source files -> named, line-ranged symbols.

Public API:
    extract_symbols(file_path, language, content) -> list[Symbol]
    parse_file(project_root, rel_path, language=None) -> ParsedFile
    parse_project(project_root, languages) -> list[ParsedFile]
    detect_language(file_path) -> str | None
"""

import logging
import os
from typing import List, Optional

from .models import ParseError, ParsedFile, Symbol, SYMBOL_KINDS, slice_lines, source_lines
from .registry import LanguageRegistry, LanguageSupport, get_registry
from .utils import calculate_complexity, filter_by_language, should_skip_directory, walk_source_files

logger = logging.getLogger(__name__)

__all__ = [
    "extract_symbols",
    "parse_file",
    "parse_project",
    "detect_language",
    "calculate_complexity",
    "should_skip_directory",
    "walk_source_files",
    "get_registry",
    "LanguageRegistry",
    "LanguageSupport",
    "Symbol",
    "SYMBOL_KINDS",
    "ParseError",
    "ParsedFile",
    "slice_lines",
    "source_lines",
]


def detect_language(file_path: str) -> Optional[str]:
    """Detect language tag from the file extension (None if unsupported)."""
    return get_registry().detect(file_path)


def extract_symbols(
    file_path: str,
    language: str,
    content: str,
    registry: Optional[LanguageRegistry] = None,
) -> List[Symbol]:
    """Extract symbols from file content.

    An unsupported language yields no symbols. Extraction failures are
    logged and also yield no symbols.
    """
    registry = registry or get_registry()
    extractor = registry.extractor_for(language)
    if extractor is None:
        logger.debug(f"No extractor for language '{language}' ({file_path})")
        return []
    try:
        return extractor.extract(content, file_path)
    except Exception as e:
        logger.warning(f"Failed to extract symbols from {file_path}: {e}")
        return []


def parse_file(
    project_root: str,
    rel_path: str,
    language: Optional[str] = None,
    registry: Optional[LanguageRegistry] = None,
) -> ParsedFile:
    """Read one project file and extract its symbols.

    Read errors are reported in ``ParsedFile.errors`` with no symbols.
    """
    registry = registry or get_registry()
    language = language or registry.detect(rel_path) or "unknown"
    abs_path = os.path.join(project_root, rel_path)

    try:
        with open(abs_path, "r", encoding="utf-8", errors="replace") as f:
            content = f.read()
    except OSError as e:
        logger.warning(f"Could not read {rel_path}: {e}")
        return ParsedFile(
            file_path=rel_path,
            language=language,
            content="",
            errors=[ParseError(file_path=rel_path, line=0, message=str(e), severity="error")],
        )

    symbols = extract_symbols(rel_path, language, content, registry)
    return ParsedFile(file_path=rel_path, language=language, content=content, symbols=symbols)


def parse_project(
    project_root: str,
    languages: Optional[List[str]] = None,
    registry: Optional[LanguageRegistry] = None,
) -> List[ParsedFile]:
    """Parse every source file under project_root matching ``languages``.

    Files are returned in sorted traversal order; unreadable files are
    skipped.
    """
    registry = registry or get_registry()
    parsed: List[ParsedFile] = []
    for _, rel_path, language in filter_by_language(
        walk_source_files(project_root), languages, registry
    ):
        result = parse_file(project_root, rel_path, language, registry)
        if result.errors:
            continue
        parsed.append(result)
    logger.info(f"Parsed {len(parsed)} files under {project_root}")
    return parsed
