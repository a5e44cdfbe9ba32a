"""Filesystem object store implementation."""

import shutil
from pathlib import Path
from typing import Iterator

from ..errors import ObjectNotFoundError, ObjectStoreError


class FilesystemObjectStore:
    """
    Object store backed by a directory (shared mounts, unit tests).

    Object key "a/b/c" is stored at base_dir/a/b/c.
    """

    def __init__(self, base_dir: Path):
        """
        Initialize filesystem store.

        Args:
            base_dir: Base directory for objects
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        parts = key.split("/")
        if not key or key.startswith("/") or ".." in parts:
            raise ObjectStoreError(f"Invalid object key: {key!r}")
        return self.base_dir.joinpath(*parts)

    def list(self, prefix: str) -> Iterator[str]:
        """List keys under base_dir matching prefix, in sorted order."""
        for path in sorted(self.base_dir.rglob("*")):
            if not path.is_file():
                continue
            key = path.relative_to(self.base_dir).as_posix()
            if key.startswith(prefix):
                yield key

    def get(self, key: str, dest: Path) -> int:
        """Copy object to dest."""
        src = self._path(key)
        if not src.is_file():
            raise ObjectNotFoundError(key)
        try:
            shutil.copyfile(src, dest)
        except OSError as e:
            raise ObjectStoreError(f"Failed to read {key}: {e}") from e
        return Path(dest).stat().st_size

    def put(self, key: str, path: Path) -> None:
        """Copy file into the store, replacing any existing object."""
        dest = self._path(key)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, dest)
        except OSError as e:
            raise ObjectStoreError(f"Failed to write {key}: {e}") from e
