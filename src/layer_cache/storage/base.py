"""Base protocol for remote object store implementations."""

from pathlib import Path
from typing import Iterator, Protocol


class ObjectStore(Protocol):
    """
    Protocol for remote object store implementations.

    Keys are "/"-separated strings inside the store's bucket or container.
    Implementations translate client errors into ObjectStoreError and
    ObjectNotFoundError; content verification is the caller's responsibility.
    """

    def list(self, prefix: str) -> Iterator[str]:
        """
        List object keys starting with prefix.

        Args:
            prefix: Key prefix to match

        Returns:
            Iterator over matching object keys
        """
        ...

    def get(self, key: str, dest: Path) -> int:
        """
        Download an object to a local file.

        Args:
            key: Object key
            dest: Local destination path (parent must exist)

        Returns:
            Number of bytes written
        """
        ...

    def put(self, key: str, path: Path) -> None:
        """
        Upload a local file, overwriting any existing object.

        Args:
            key: Object key
            path: Local file path to upload
        """
        ...
