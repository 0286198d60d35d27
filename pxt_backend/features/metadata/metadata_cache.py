"""Bounded path -> probe-output cache with mtime/size invalidation."""
import os
from collections import OrderedDict
from typing import Any, NamedTuple, Optional

from ...config import METADATA_CACHE_MAX_ENTRIES


class _Stamp(NamedTuple):
    mtime_ns: int
    size: int


def _stamp(path: str) -> Optional[_Stamp]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return _Stamp(st.st_mtime_ns, st.st_size)


class MetadataCache:
    """
    Entries are dropped when the file's mtime or size changes. Once full, the
    entry inserted earliest is evicted; reads do not refresh an entry's age.
    """

    def __init__(self, max_entries: Optional[int] = None):
        limit = METADATA_CACHE_MAX_ENTRIES if max_entries is None else max_entries
        self._max = max(1, int(limit))
        self._store: OrderedDict[str, tuple[_Stamp, dict[str, Any]]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, path: object) -> bool:
        return path in self._store

    @property
    def max_entries(self) -> int:
        return self._max

    def get(self, path: str) -> dict[str, Any] | None:
        item = self._store.get(path)
        if item is None:
            self._misses += 1
            return None
        stamp, data = item
        if _stamp(path) != stamp:
            self._store.pop(path, None)
            self._misses += 1
            return None
        self._hits += 1
        return dict(data)

    def put(self, path: str, data: dict[str, Any]) -> None:
        stamp = _stamp(path)
        if stamp is None:
            return
        self._store.pop(path, None)
        self._store[path] = (stamp, dict(data or {}))
        while len(self._store) > self._max:
            self._store.popitem(last=False)

    def invalidate(self, path: str) -> None:
        self._store.pop(path, None)

    def clear(self) -> None:
        self._store.clear()
        self._hits = 0
        self._misses = 0

    def stats(self) -> dict[str, int]:
        return {"entries": len(self._store), "max_entries": self._max, "hits": self._hits, "misses": self._misses}
