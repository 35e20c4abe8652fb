import json
import os
import tempfile
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path

from grading_client.logging.logger import Log
from grading_client.storage.base import BaseStorage
from grading_client.storage.exceptions import StorageError


class FileStorage(BaseStorage):
    """JSON file store. Every write replaces the whole file atomically."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set_items(self, items: Mapping[str, str]) -> None:
        with self._lock:
            data = self._read()
            data.update(items)
            self._write(data)

    def remove_items(self, keys: Iterable[str]) -> None:
        """Remove keys. An unreadable file is replaced by an empty store."""
        with self._lock:
            try:
                data = self._read()
            except StorageError as exc:
                Log.warning(f"Replacing unreadable storage file: {exc}")
                self._write({})
                return
            removed = False
            for key in keys:
                if data.pop(key, None) is not None:
                    removed = True
            if removed:
                self._write(data)

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read storage file {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Storage file {self._path} must contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    json.dump(data, tmp)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"Cannot write storage file {self._path}: {exc}") from exc
