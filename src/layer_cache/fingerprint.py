"""Cache key derivation for about-to-be-built layers.

The key identifies an equivalence class of build steps: two builds that would
start from the same parent layer, carry the same history and run the same
next instruction over the same content digests produce the same key.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence
import hashlib

from pydantic import BaseModel, ConfigDict, Field


class HistoryEntry(BaseModel):
    """One entry of an image's build history (OCI image config `history`)."""

    model_config = ConfigDict(populate_by_name=True)

    created: Optional[datetime] = None
    created_by: str = Field("", alias="createdBy")
    author: str = ""
    comment: str = ""
    empty_layer: bool = Field(False, alias="emptyLayer")


def _canonical_time(created: Optional[datetime]) -> str:
    """Render a timestamp in UTC ISO-8601 form; naive values are taken as UTC."""
    if created is None:
        return ""
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created.astimezone(timezone.utc).isoformat()


def _render_bool(value: bool) -> str:
    return "true" if value else "false"


def _feed(h, value: str) -> None:
    """Write one length-framed, NUL-terminated field."""
    data = value.encode("utf-8")
    h.update(str(len(data)).encode("ascii"))
    h.update(b":")
    h.update(data)
    h.update(b"\x00")


def derive_cache_key(
    manifest_type: str,
    build_adds_layer: bool,
    parent_layer_id: str,
    history: Iterable[HistoryEntry],
    next_created_by: str,
    digests: Sequence[str],
) -> str:
    """Compute the cache key for a layer that is about to be built.

    Fields are hashed in a fixed order. Each one is framed as
    ``<length>:<bytes>\\x00`` so no field value can be mistaken for a
    separator, and every history entry ends with an extra ``\\x01`` record
    terminator.

    Args:
        manifest_type: Manifest media type of the image being built
        build_adds_layer: Whether the next step produces a filesystem layer
        parent_layer_id: Identifier of the parent (current top) layer
        history: History entries of the parent image, in order
        next_created_by: "created by" command of the step about to run
        digests: Content digests consumed by the step, in order

    Returns:
        64-character lowercase hex SHA-256 digest

    Example:
        >>> key = derive_cache_key(
        ...     "application/vnd.oci.image.manifest.v1+json", True,
        ...     "sha256:abc...", [], "RUN make", ["sha256:def..."],
        ... )
    """
    h = hashlib.sha256()

    _feed(h, manifest_type)
    _feed(h, _render_bool(build_adds_layer))
    _feed(h, parent_layer_id)

    for entry in history:
        _feed(h, _canonical_time(entry.created))
        _feed(h, entry.created_by)
        _feed(h, entry.author)
        _feed(h, entry.comment)
        _feed(h, _render_bool(entry.empty_layer))
        h.update(b"\x01")

    _feed(h, next_created_by)

    # Every digest contributes, in order
    for digest in digests:
        _feed(h, str(digest))

    return h.hexdigest()


class BuildDescription(BaseModel):
    """Serializable inputs of derive_cache_key (build description files)."""

    manifest_type: str
    build_adds_layer: bool = True
    parent_layer_id: str = ""
    history: List[HistoryEntry] = Field(default_factory=list)
    next_created_by: str = ""
    digests: List[str] = Field(default_factory=list)

    def cache_key(self) -> str:
        return derive_cache_key(
            self.manifest_type,
            self.build_adds_layer,
            self.parent_layer_id,
            self.history,
            self.next_created_by,
            self.digests,
        )


__all__ = ["BuildDescription", "HistoryEntry", "derive_cache_key"]
