"""manifest.json model for cache entries.

A cache entry's manifest describes the image the entry holds: a config
reference and the ordered layers. Blobs are stored under ``blobs/`` named by
the hash portion of their digest.
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedManifestError

_ALGORITHM = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*$")
_ENCODED = re.compile(r"^[A-Za-z0-9=_-]+$")


class LayerDescriptor(BaseModel):
    """Descriptor of a single layer."""

    model_config = ConfigDict(extra="ignore")

    mediaType: str = ""
    digest: str
    size: int = 0


class ImageManifest(BaseModel):
    """Image manifest as written by the transfer engine into an entry directory."""

    model_config = ConfigDict(extra="ignore")

    schemaVersion: Union[int, str, None] = None
    config: Union[Dict[str, Any], str, None] = None
    layers: List[LayerDescriptor] = Field(default_factory=list)

    @property
    def has_config(self) -> bool:
        return bool(self.config)

    @classmethod
    def load(cls, path: Path, key: Optional[str] = None, backend: Optional[str] = None) -> "ImageManifest":
        """Parse a manifest.json file.

        Raises:
            MalformedManifestError: If the file is not valid JSON or does not
                match the manifest shape
        """
        try:
            data = json.loads(path.read_bytes())
            return cls.model_validate(data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            raise MalformedManifestError(f"invalid manifest {path.name}: {e}",
                                         key=key, backend=backend) from e


def blob_name(digest: str) -> str:
    """Return the blob file name for a digest: the digest minus its algorithm prefix.

    Args:
        digest: Digest string such as "sha256:0011..."

    Returns:
        Hash portion of the digest

    Raises:
        ValueError: If the digest has no "algorithm:" prefix, an empty hash,
            or characters that are unsafe in a file name
    """
    algorithm, sep, encoded = digest.partition(":")
    if not sep or not _ALGORITHM.fullmatch(algorithm):
        raise ValueError(f"Digest has no algorithm prefix: {digest!r}")
    if not encoded or not _ENCODED.fullmatch(encoded):
        raise ValueError(f"Digest has an invalid hash portion: {digest!r}")
    return encoded


def layer_blob_names(manifest: ImageManifest, key: Optional[str] = None,
                     backend: Optional[str] = None) -> List[str]:
    """Blob names for every declared layer, in manifest order."""
    names = []
    for layer in manifest.layers:
        try:
            names.append(blob_name(layer.digest))
        except ValueError as e:
            raise MalformedManifestError(str(e), key=key, backend=backend) from e
    return names


__all__ = ["ImageManifest", "LayerDescriptor", "blob_name", "layer_blob_names"]
