from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping


class BaseStorage(ABC):
    """Contract for durable key/value stores holding client session state.

    Multi-key writes and removals are atomic: a reader never observes a
    state where only part of a ``set_items`` or ``remove_items`` call landed.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent.

        Raises:
            StorageError: if the store cannot be read.
        """

    @abstractmethod
    def set_items(self, items: Mapping[str, str]) -> None:
        """Write all items in one atomic operation.

        Raises:
            StorageError: if the store cannot be written.
        """

    @abstractmethod
    def remove_items(self, keys: Iterable[str]) -> None:
        """Remove all keys in one atomic operation. Missing keys are ignored.

        Raises:
            StorageError: if the store cannot be written.
        """
