"""Local import resolution and bounded-depth dependency expansion."""

from .import_scanners import (
    GoImportScanner,
    ImportScanner,
    JavaScriptImportScanner,
    PythonImportScanner,
)
from .resolver import DependencyResolver

__all__ = [
    "DependencyResolver",
    "ImportScanner",
    "JavaScriptImportScanner",
    "PythonImportScanner",
    "GoImportScanner",
]
