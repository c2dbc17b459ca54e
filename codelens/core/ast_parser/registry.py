"""Language registry.

Maps a language tag to its capabilities: file extensions (detection), a
symbol extractor and an import scanner. Callers look a language up here
instead of branching on the tag; adding a language is one ``register``
call.
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from ..dependencies.import_scanners import ImportScanner
    from .base import BaseSymbolExtractor

logger = logging.getLogger(__name__)


@dataclass
class LanguageSupport:
    """Capabilities registered for one language tag."""

    tag: str
    extensions: Tuple[str, ...]
    extractor: Optional["BaseSymbolExtractor"] = None
    import_scanner: Optional["ImportScanner"] = None


class LanguageRegistry:
    """Tag -> LanguageSupport, plus extension -> tag for detection."""

    def __init__(self):
        self._languages: Dict[str, LanguageSupport] = {}
        self._extensions: Dict[str, str] = {}

    def register(self, support: LanguageSupport) -> None:
        self._languages[support.tag] = support
        for ext in support.extensions:
            self._extensions[ext.lower()] = support.tag
        logger.debug(f"Registered language {support.tag} ({', '.join(support.extensions)})")

    def get(self, tag: str) -> Optional[LanguageSupport]:
        return self._languages.get(tag)

    def detect(self, file_path: str) -> Optional[str]:
        """Detect the language tag from a file extension."""
        _, ext = os.path.splitext(file_path)
        return self._extensions.get(ext.lower())

    def tags(self) -> List[str]:
        return sorted(self._languages)

    def extractor_for(self, tag: str) -> Optional["BaseSymbolExtractor"]:
        support = self._languages.get(tag)
        return support.extractor if support else None

    def import_scanner_for(self, tag: str) -> Optional["ImportScanner"]:
        support = self._languages.get(tag)
        return support.import_scanner if support else None


_default_registry: Optional[LanguageRegistry] = None
_registry_lock = threading.Lock()


def _build_default_registry() -> LanguageRegistry:
    # Imported here so that loading the registry does not pull in every grammar
    from ..dependencies.import_scanners import (
        GoImportScanner,
        JavaScriptImportScanner,
        PythonImportScanner,
    )
    from .heuristic_parsers import GoExtractor
    from .javascript_parser import JavaScriptExtractor
    from .python_parser import PythonExtractor
    from .typescript_parser import TypeScriptExtractor

    registry = LanguageRegistry()
    js_imports = JavaScriptImportScanner()
    registry.register(LanguageSupport(
        "typescript", (".ts", ".tsx"), TypeScriptExtractor(), js_imports,
    ))
    registry.register(LanguageSupport(
        "javascript", (".js", ".jsx", ".mjs", ".cjs"), JavaScriptExtractor(), js_imports,
    ))
    registry.register(LanguageSupport(
        "python", (".py",), PythonExtractor(), PythonImportScanner(),
    ))
    registry.register(LanguageSupport(
        "go", (".go",), GoExtractor(), GoImportScanner(),
    ))
    # Detected (and counted by the index) but no extractor yet
    registry.register(LanguageSupport("java", (".java",)))
    return registry


def get_registry() -> LanguageRegistry:
    """Return the process-wide registry with the built-in languages."""
    global _default_registry
    with _registry_lock:
        if _default_registry is None:
            _default_registry = _build_default_registry()
        return _default_registry
