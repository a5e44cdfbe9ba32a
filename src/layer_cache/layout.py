"""On-disk layout of cache entries.

Directory Structure:
    <root>/<key>/imageID          raw image id, no trailing newline
    <root>/<key>/manifest.json    image manifest
    <root>/<key>/blobs/<hash>     config and layer blobs
"""

import re
from pathlib import Path

from .constants import BLOBS_DIR, IMAGE_ID_FILE, MANIFEST_FILE
from .errors import InvalidKeyError

_KEY = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_key(key: str) -> str:
    """Validate a cache key for use as a path segment and object key prefix.

    Raises:
        InvalidKeyError: If the key is empty, contains separators or control
            characters, or starts with "."
    """
    if not isinstance(key, str) or not _KEY.fullmatch(key):
        raise InvalidKeyError(f"Invalid cache key: {key!r}")
    return key


class EntryLayout:
    """Resolves entry paths under a cache root."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def key_dir(self, key: str) -> Path:
        return self.root / validate_key(key)

    def image_id_path(self, key: str) -> Path:
        return self.key_dir(key) / IMAGE_ID_FILE

    def manifest_path(self, key: str) -> Path:
        return self.key_dir(key) / MANIFEST_FILE

    def blob_path(self, key: str, name: str) -> Path:
        return self.key_dir(key) / BLOBS_DIR / name

    def has_entry(self, key: str) -> bool:
        return self.key_dir(key).exists()

    def read_image_id(self, key: str) -> str:
        return read_marker(self.image_id_path(key))


def read_marker(path: Path) -> str:
    """Read an imageID marker.

    The marker holds the raw image id. A single trailing newline, as left by
    hand-written markers, is dropped; any other whitespace is kept.

    Raises:
        FileNotFoundError: If the marker does not exist
        UnicodeDecodeError: If the marker is not UTF-8
    """
    text = path.read_bytes().decode("utf-8")
    return text[:-1] if text.endswith("\n") else text
