from __future__ import annotations

import copy
from contextlib import contextmanager
from typing import Any, Callable, Iterator

QueryKey = tuple[str, ...]


def as_key(key: str | QueryKey) -> QueryKey:
    return (key,) if isinstance(key, str) else tuple(key)


class QueryCache:
    """Per-dashboard cache of API responses keyed by endpoint path segments.

    ``("/api/cases",)`` holds the case list, ``("/api/cases", "<id>")`` a
    single case. Invalidating a key drops it and every key it prefixes.
    """

    def __init__(self) -> None:
        self._data: dict[QueryKey, Any] = {}
        self.invalidated: list[QueryKey] = []

    def __contains__(self, key: str | QueryKey) -> bool:
        return as_key(key) in self._data

    def get(self, key: str | QueryKey, default: Any = None) -> Any:
        return self._data.get(as_key(key), default)

    def set(self, key: str | QueryKey, value: Any) -> None:
        self._data[as_key(key)] = value

    def fetch(self, key: str | QueryKey, loader: Callable[[], Any]) -> Any:
        k = as_key(key)
        if k not in self._data:
            self._data[k] = loader()
        return self._data[k]

    def invalidate(self, key: str | QueryKey) -> None:
        prefix = as_key(key)
        for cached in [k for k in self._data if k[: len(prefix)] == prefix]:
            del self._data[cached]
        self.invalidated.append(prefix)

    @contextmanager
    def optimistic(self, key: str | QueryKey, updater: Callable[[Any], Any]) -> Iterator[Any]:
        """Apply ``updater`` to the cached value now; restore the snapshot if the block raises."""
        k = as_key(key)
        had_value = k in self._data
        snapshot = copy.deepcopy(self._data.get(k))
        self._data[k] = updater(copy.deepcopy(snapshot))
        try:
            yield self._data[k]
        except Exception:
            if had_value:
                self._data[k] = snapshot
            else:
                self._data.pop(k, None)
            raise
