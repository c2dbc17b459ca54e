"""Thread-safe per-project cache with TTL.

Holds the loaded index entries of a project so repeated searches do not
re-read every embedding from the database. Entries expire after the TTL
and are invalidated whenever the project's index is written or cleared.

Usage:
    cache = ProjectCache(ttl=300)
    entries = cache.get_or_load(project_id, loader)
    cache.invalidate(project_id)   # Invalidate specific project
    cache.clear()                  # Clear all
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ProjectCache:
    """Project-keyed value cache with TTL.

    Cache is invalidated when:
    - TTL expires (default: 5 minutes)
    - Explicitly invalidated (after indexing or clearing a project)

    Attributes:
        ttl: Time-to-live in seconds (default: 300)
    """

    def __init__(self, ttl: int = 300):
        self._ttl = ttl
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, project_id: str) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._cache.get(project_id)
            if entry is None:
                return None
            value, timestamp = entry
            if time.time() - timestamp >= self._ttl:
                logger.debug(f"Cache expired for project {project_id}")
                del self._cache[project_id]
                return None
            return value

    def put(self, project_id: str, value: Any) -> None:
        with self._lock:
            self._cache[project_id] = (value, time.time())

    def get_or_load(self, project_id: str, loader: Callable[[str], Any]) -> Any:
        """Return the cached value, loading (and caching) it on a miss.

        The loader runs outside the lock; concurrent misses may both load,
        and the last one stored wins.
        """
        value = self.get(project_id)
        if value is not None:
            with self._lock:
                self._hits += 1
            logger.debug(f"Cache hit for project {project_id}")
            return value

        start_time = time.time()
        value = loader(project_id)
        load_time_ms = int((time.time() - start_time) * 1000)
        self.put(project_id, value)
        with self._lock:
            self._misses += 1
        logger.info(f"Cached index for project {project_id} (loaded in {load_time_ms}ms)")
        return value

    def invalidate(self, project_id: Optional[str] = None) -> None:
        """Invalidate cache for a project or all projects."""
        with self._lock:
            if project_id:
                if self._cache.pop(project_id, None) is not None:
                    logger.debug(f"Invalidated index cache for project {project_id}")
            else:
                self._cache.clear()
                logger.debug("Invalidated all index caches")

    def clear(self) -> None:
        """Clear all cached entries."""
        self.invalidate()

    def get_stats(self) -> Dict:
        with self._lock:
            current_time = time.time()
            oldest_age = max(
                (current_time - ts for _, ts in self._cache.values()), default=0
            )
            return {
                "project_count": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
                "oldest_entry_age_sec": int(oldest_age),
                "ttl_sec": self._ttl,
            }

    @property
    def ttl(self) -> int:
        """Get the cache TTL in seconds."""
        return self._ttl

    @ttl.setter
    def ttl(self, value: int) -> None:
        """Set the cache TTL in seconds."""
        self._ttl = value
