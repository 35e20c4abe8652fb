import threading
from collections.abc import Iterable, Mapping

from grading_client.storage.base import BaseStorage


class MemoryStorage(BaseStorage):
    """In-process store. Does not survive restarts; used for tests and dry runs."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set_items(self, items: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update(items)

    def remove_items(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)
