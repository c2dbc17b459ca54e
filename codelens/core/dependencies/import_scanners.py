"""Per-language local import scanning and resolution.

Each scanner does two things:

- ``scan(content)``: regex-extract import specifiers from source text;
- ``resolve(specifier, importer, project_root)``: map one specifier to
  project-relative file paths that exist inside the project tree.

Anything that cannot be resolved to a file inside the project (named
packages, stdlib modules, paths escaping the root) resolves to nothing.
"""

import os
import posixpath
import re
from abc import ABC, abstractmethod
from typing import List


def _inside_project(rel_path: str) -> bool:
    return bool(rel_path) and not rel_path.startswith("..") and not os.path.isabs(rel_path)


def _existing(project_root: str, candidates: List[str]) -> List[str]:
    """First candidate that is a file inside the project, as a list."""
    for candidate in candidates:
        rel = posixpath.normpath(candidate)
        if _inside_project(rel) and os.path.isfile(os.path.join(project_root, rel)):
            return [rel]
    return []


class ImportScanner(ABC):
    """Strategy interface for one language's import statements."""

    @abstractmethod
    def scan(self, content: str) -> List[str]:
        """Return import specifiers in source order (duplicates removed)."""
        ...

    @abstractmethod
    def resolve(self, specifier: str, importer: str, project_root: str) -> List[str]:
        """Resolve a specifier imported by ``importer`` (project-relative)."""
        ...

    @staticmethod
    def _unique(items: List[str]) -> List[str]:
        seen = set()
        out = []
        for item in items:
            if item not in seen:
                seen.add(item)
                out.append(item)
        return out


# =============================================================================
# JavaScript / TypeScript
# =============================================================================

_JS_PATTERNS = [
    # import x from './a'; import {a, b} from '../b'; import type {T} from './t'; import './side-effect'
    re.compile(r"""\bimport\s+(?:[\w*{}\s,$]+?\s+from\s+)?['"]([^'"\n]+)['"]"""),
    # export * from './a'; export {x} from './b'
    re.compile(r"""\bexport\s+(?:type\s+)?(?:\*(?:\s+as\s+\w+)?|\{[^}]*\})\s+from\s+['"]([^'"\n]+)['"]"""),
    # require('./a')
    re.compile(r"""\brequire\s*\(\s*['"]([^'"\n]+)['"]\s*\)"""),
    # import('./a')
    re.compile(r"""\bimport\s*\(\s*['"]([^'"\n]+)['"]\s*\)"""),
]

JS_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")


class JavaScriptImportScanner(ImportScanner):
    """ES module, CommonJS and dynamic imports with relative specifiers."""

    def scan(self, content: str) -> List[str]:
        found = []
        for pattern in _JS_PATTERNS:
            for match in pattern.finditer(content):
                found.append((match.start(), match.group(1)))
        found.sort(key=lambda item: item[0])
        return self._unique(
            [target for _, target in found if target.startswith("./") or target.startswith("../")]
        )

    def resolve(self, specifier: str, importer: str, project_root: str) -> List[str]:
        base = posixpath.join(posixpath.dirname(importer), specifier)
        candidates = [base]
        # TS projects often import './x.js' for a './x.ts' source
        stem, ext = posixpath.splitext(base)
        if ext in (".js", ".jsx", ".mjs", ".cjs"):
            candidates.extend(stem + alt for alt in (".ts", ".tsx"))
        candidates.extend(base + e for e in JS_EXTENSIONS)
        candidates.extend(posixpath.join(base, "index" + e) for e in JS_EXTENSIONS)
        return _existing(project_root, candidates)


# =============================================================================
# Python
# =============================================================================

_PY_FROM = re.compile(r"^\s*from\s+(\.*)([\w.]*)\s+import\s+\(?\s*([^)#\n]*)", re.MULTILINE)
_PY_IMPORT = re.compile(r"^\s*import\s+([\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)", re.MULTILINE)


class PythonImportScanner(ImportScanner):
    """``import a.b`` and ``from (.)a.b import c`` statements.

    Specifiers keep their leading dots; ``from . import x`` yields ``.x``.
    """

    def scan(self, content: str) -> List[str]:
        found = []
        for match in _PY_FROM.finditer(content):
            dots, module, names = match.group(1), match.group(2), match.group(3)
            if module:
                found.append((match.start(), dots + module))
            elif dots:
                for name in names.split(","):
                    name = name.strip().split(" as ")[0].strip()
                    if name and name != "*" and name.isidentifier():
                        found.append((match.start(), dots + name))
        for match in _PY_IMPORT.finditer(content):
            for part in match.group(1).split(","):
                module = part.strip().split()[0]
                if module:
                    found.append((match.start(), module))
        found.sort(key=lambda item: item[0])
        return self._unique([target for _, target in found])

    def resolve(self, specifier: str, importer: str, project_root: str) -> List[str]:
        level = len(specifier) - len(specifier.lstrip("."))
        module_path = specifier.lstrip(".").replace(".", "/")
        importer_dir = posixpath.dirname(importer)

        if level:
            base_dir = importer_dir
            for _ in range(level - 1):
                base_dir = posixpath.dirname(base_dir) if base_dir else ".."
            bases = [base_dir]
        else:
            bases = ["", importer_dir] if importer_dir else [""]

        candidates = []
        for base in bases:
            target = posixpath.join(base, module_path) if module_path else base
            if not target:
                continue
            candidates.append(target + ".py")
            candidates.append(posixpath.join(target, "__init__.py"))
        return _existing(project_root, candidates)


# =============================================================================
# Go
# =============================================================================

_GO_BLOCK = re.compile(r"^\s*import\s*\(([^)]*)\)", re.MULTILINE)
_GO_SINGLE = re.compile(r'^\s*import\s+(?:[\w.]+\s+)?"([^"]+)"', re.MULTILINE)
_GO_QUOTED = re.compile(r'"([^"]+)"')


class GoImportScanner(ImportScanner):
    """Relative Go imports (``./pkg``, ``../pkg``)."""

    def scan(self, content: str) -> List[str]:
        found = []
        for block in _GO_BLOCK.finditer(content):
            for match in _GO_QUOTED.finditer(block.group(1)):
                found.append((block.start(1) + match.start(), match.group(1)))
        for match in _GO_SINGLE.finditer(content):
            found.append((match.start(), match.group(1)))
        found.sort(key=lambda item: item[0])
        return self._unique(
            [target for _, target in found if target.startswith("./") or target.startswith("../")]
        )

    def resolve(self, specifier: str, importer: str, project_root: str) -> List[str]:
        base = posixpath.normpath(posixpath.join(posixpath.dirname(importer), specifier))
        if not _inside_project(base):
            return []
        as_file = _existing(project_root, [base + ".go"])
        if as_file:
            return as_file
        pkg_dir = os.path.join(project_root, base)
        if not os.path.isdir(pkg_dir):
            return []
        return [
            posixpath.join(base, name)
            for name in sorted(os.listdir(pkg_dir))
            if name.endswith(".go") and not name.endswith("_test.go")
        ]
