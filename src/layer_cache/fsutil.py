"""Filesystem helpers: path safety and crash-safe writes."""

import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

PARTIAL_MARKER = ".partial-"

T = TypeVar("T")


def safe_target(root: Path, rel_path: str) -> Path:
    """Validate that a relative path stays within root.

    Args:
        root: Directory the path must stay inside
        rel_path: Relative path taken from a remote object key

    Returns:
        Safe resolved path

    Raises:
        ValueError: If path is unsafe or escapes root
    """
    if not rel_path or not rel_path.strip():
        raise ValueError("Unsafe path: empty path")

    # Forbid absolute or parent traversal, both separator styles
    if (rel_path.startswith(("/", "\\")) or
        ".." in Path(rel_path).parts or
        ".." in rel_path.split("\\") or
        ".." in rel_path.split("/")):
        raise ValueError(f"Unsafe path: {rel_path}")

    target = (root / rel_path).resolve()
    try:
        target.relative_to(root.resolve())
    except ValueError:
        raise ValueError(f"Unsafe path escapes root: {rel_path}")

    return target


def _fsync_dir(path: Path) -> None:
    """Best-effort directory fsync; unsupported on some platforms."""
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        fd = os.open(str(path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        logger.debug("Directory fsync not supported for %s", path)


def atomic_download(write_fn: Callable[[str], T], final_path: Path) -> T:
    """Atomically download a file.

    The content is written to a temp file in the destination directory and
    renamed into place only after write_fn returns, so an interrupted
    download never leaves a file at final_path.

    Args:
        write_fn: Function that takes a file path (not file object)
        final_path: Final destination path

    Returns:
        Whatever write_fn returns
    """
    final_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmppath = tempfile.mkstemp(
        prefix=f".{final_path.name}{PARTIAL_MARKER}",
        dir=final_path.parent,
    )
    try:
        os.close(fd)
        result = write_fn(tmppath)

        with open(tmppath, "r+b") as f:
            os.fsync(f.fileno())

        os.replace(tmppath, final_path)
        _fsync_dir(final_path.parent)
        return result
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmppath)
        raise


def atomic_write_text(path: Path, content: str) -> None:
    """Write text via temp file + rename."""
    def _write(tmppath: str) -> None:
        with open(tmppath, "w", encoding="utf-8") as f:
            f.write(content)

    atomic_download(_write, path)


def is_partial(path: Path) -> bool:
    """True for temp files left behind by an in-flight or interrupted download."""
    return path.name.startswith(".") and PARTIAL_MARKER in path.name


def iter_entry_files(directory: Path) -> Iterator[Path]:
    """Yield regular files under directory in sorted order, skipping partial downloads."""
    for path in sorted(directory.rglob("*")):
        if path.is_file() and not is_partial(path):
            yield path
