"""
Per-run memoization of remote lookups.
"""
import threading
from typing import Any, Callable, Dict, Hashable, Tuple


def cache_key(scope: str, identifier: Any, region: str, *parts: Any) -> Tuple[str, ...]:
    """Build the composite key of a cached lookup.

    Args:
        scope: Kind of lookup (e.g. 'api', 'stack-resource')
        identifier: Resource being looked up
        region: AWS region the lookup runs in
        *parts: Any further qualifiers

    Returns:
        Tuple usable as a dictionary key
    """
    return (scope, str(identifier), region) + tuple(str(part) for part in parts)


class ResolutionCache:
    """Memoizes lookup results for the lifetime of one resolver.

    Entries never expire. Loading is serialized per key: concurrent callers
    asking for the same key wait for the first one and share its result.
    Exceptions raised by a loader are not cached.
    """

    def __init__(self):
        self._entries: Dict[Hashable, Any] = {}
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key``, calling ``loader`` on a miss."""
        if key in self._entries:
            return self._entries[key]

        with self._lock_for(key):
            if key in self._entries:
                return self._entries[key]
            value = loader()
            self._entries[key] = value
            return value
