"""Bounded-depth local dependency expansion.

Direct edges are computed once per file (read + import scan + resolve)
and cached for the lifetime of the resolver call, so each file is
scanned at most once however many seeds reach it. Closures are then
breadth-first walks over those edges, one per seed, each with its own
visited set and the same hop bound.
"""

import logging
import os
from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from ..ast_parser.registry import LanguageRegistry, get_registry

logger = logging.getLogger(__name__)


class DependencyResolver:
    """Resolve local imports into project-relative file paths."""

    def __init__(self, registry: Optional[LanguageRegistry] = None):
        self._registry = registry or get_registry()

    def direct_dependencies(self, project_root: str, rel_path: str) -> List[str]:
        """Local files imported by ``rel_path``, in import order.

        Unreadable or unsupported files have no edges.
        """
        language = self._registry.detect(rel_path)
        scanner = self._registry.import_scanner_for(language) if language else None
        if scanner is None:
            return []

        try:
            with open(os.path.join(project_root, rel_path), "r", encoding="utf-8", errors="replace") as f:
                content = f.read()
        except OSError as e:
            logger.warning(f"Could not read {rel_path} for import scan: {e}")
            return []

        deps: List[str] = []
        for specifier in scanner.scan(content):
            for target in scanner.resolve(specifier, rel_path, project_root):
                if target != rel_path and target not in deps:
                    deps.append(target)
        return deps

    def resolve(
        self,
        project_root: str,
        seed_file_paths: Iterable[str],
        max_depth: int = 1,
    ) -> Dict[str, Set[str]]:
        """Map each seed to the files reachable within ``max_depth`` hops.

        The seed itself is not part of its own closure.
        """
        edges: Dict[str, List[str]] = {}

        def neighbours(path: str) -> List[str]:
            if path not in edges:
                edges[path] = self.direct_dependencies(project_root, path)
            return edges[path]

        result: Dict[str, Set[str]] = {}
        for seed in seed_file_paths:
            if seed in result:
                continue
            closure: Set[str] = set()
            visited = {seed}
            queue = deque([(seed, 0)])
            while queue:
                path, depth = queue.popleft()
                if depth >= max_depth:
                    continue
                for dep in neighbours(path):
                    if dep in visited:
                        continue
                    visited.add(dep)
                    closure.add(dep)
                    queue.append((dep, depth + 1))
            result[seed] = closure

        logger.debug(
            f"Resolved dependencies for {len(result)} seeds "
            f"({len(edges)} files scanned, max_depth={max_depth})"
        )
        return result

    def expand(
        self,
        project_root: str,
        seed_file_paths: Iterable[str],
        max_depth: int = 1,
    ) -> List[str]:
        """Seeds followed by their dependencies, de-duplicated, stable order."""
        seeds = list(dict.fromkeys(seed_file_paths))
        closures = self.resolve(project_root, seeds, max_depth)

        ordered: List[str] = list(seeds)
        seen = set(seeds)
        for seed in seeds:
            for dep in sorted(closures.get(seed, ())):
                if dep not in seen:
                    seen.add(dep)
                    ordered.append(dep)
        return ordered
