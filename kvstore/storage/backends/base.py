"""Base storage backend interface."""

from abc import ABC, abstractmethod
from typing import Any

from kvstore.core.models import Record


class BaseBackend(ABC):
    """Abstract base class for durable record storage.

    A backend is opened once, read in full once, and afterwards only written
    through ``commit``. Rows are returned as raw dictionaries so that the
    caller decides how to treat rows it cannot parse.
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """Human readable location of the backing store."""
        pass

    @abstractmethod
    def open(self) -> None:
        """Open the backend, creating its structure if needed.

        Raises:
            LoadError: If the store cannot be opened.
        """
        pass

    @abstractmethod
    def read_all(self) -> list[dict[str, Any]]:
        """Read every stored row.

        Each row carries ``key``, ``value``, ``tags`` (list), ``created_at``,
        ``updated_at`` and ``expires_at`` as stored.
        """
        pass

    @abstractmethod
    def commit(self, upserts: list[Record], deletes: list[str]) -> None:
        """Write upserts and deletes as a single all-or-nothing transaction.

        Raises:
            BackendWriteError: If nothing could be committed.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close backend connections."""
        pass

    def change_token(self) -> int | None:
        """Token that changes when another writer commits to the same store.

        Backends that cannot be shared between processes return None.
        """
        return None

    def __enter__(self) -> "BaseBackend":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
