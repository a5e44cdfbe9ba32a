"""Interfaces to the image transfer engine and the image store.

The cache never copies image content itself. It names two locations, an
entry directory and an image in the local store, and asks the transfer
engine to copy between them under a policy context.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

if TYPE_CHECKING:
    from .cancel import CancelToken
    from .policy import PolicyContext


class SystemContext(BaseModel):
    """Settings handed to the policy-context provider."""

    signature_policy_path: Optional[str] = None
    insecure: bool = False


@dataclass(frozen=True)
class StoreReference:
    """An image in the local content-addressable image store, by id."""

    image_id: str
    store_root: Optional[str] = None

    transport = "containers-storage"

    def __str__(self) -> str:
        if self.store_root:
            return f"{self.transport}:[{self.store_root}]@{self.image_id}"
        return f"{self.transport}:@{self.image_id}"


@dataclass(frozen=True)
class DirectoryReference:
    """An image laid out as a cache entry directory."""

    path: Path

    transport = "dir"

    def __str__(self) -> str:
        return f"{self.transport}:{self.path}"


ImageReference = StoreReference | DirectoryReference


@runtime_checkable
class ImageStore(Protocol):
    """Local image store; resolves image ids to references."""

    def reference_for(self, image_id: str) -> StoreReference:
        """
        Resolve an image id to a store reference.

        Raises:
            ValueError: If the id is not a valid image id
        """
        ...


@runtime_checkable
class ImageTransfer(Protocol):
    """Engine that copies image content between two references."""

    def copy_image(
        self,
        policy_context: "PolicyContext",
        dest: ImageReference,
        src: ImageReference,
        token: Optional["CancelToken"] = None,
    ) -> None:
        """
        Copy the image at src to dest, authorized by policy_context.

        Raises:
            Exception: Any failure; callers wrap it in TransferError
        """
        ...


_IMAGE_ID = re.compile(r"^(?:[a-z0-9]+:)?[A-Za-z0-9]+$")


class ContainersImageStore:
    """Image store addressed through the containers-storage transport."""

    def __init__(self, store_root: Optional[Path] = None):
        self.store_root = str(store_root) if store_root else None

    def reference_for(self, image_id: str) -> StoreReference:
        if not image_id or not _IMAGE_ID.fullmatch(image_id):
            raise ValueError(f"Invalid image id: {image_id!r}")
        return StoreReference(image_id=image_id, store_root=self.store_root)
