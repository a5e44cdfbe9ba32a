"""Cache provider backed by a local (or shared) directory tree."""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from ..cancel import CancelToken, check_cancelled
from ..constants import IMAGE_ID_FILE
from ..errors import CorruptEntryError, OperationCancelled, ResourceError, TransferError
from ..fsutil import atomic_write_text
from ..layout import EntryLayout
from ..policy import PolicyContextProvider, policy_scope
from ..transfer import DirectoryReference, ImageStore, ImageTransfer, SystemContext

logger = logging.getLogger(__name__)


class LocalDirectoryProvider:
    """Stores cache entries as directories under a root.

    Each entry is an image copied out of the image store by the transfer
    engine plus an ``imageID`` marker naming the image it came from.
    """

    name = "local"

    def __init__(
        self,
        image_store: ImageStore,
        policy_provider: PolicyContextProvider,
        transfer: ImageTransfer,
        root: Path,
        system_context: Optional[SystemContext] = None,
    ):
        self.image_store = image_store
        self.policy_provider = policy_provider
        self.transfer = transfer
        self.system_context = system_context or SystemContext()
        self.layout = EntryLayout(root)

    @property
    def root(self) -> Path:
        return self.layout.root

    def has_entry(self, key: str) -> bool:
        return self.layout.has_entry(key)

    def populate_layer(self, top_layer: str, token: Optional[CancelToken] = None) -> None:
        return None

    def load(self, key: str, token: Optional[CancelToken] = None) -> str:
        entry_dir = self.layout.key_dir(key)
        if not entry_dir.exists():
            return ""

        with policy_scope(self.policy_provider, self.system_context,
                          key=key, backend=self.name) as policy_context:
            src = DirectoryReference(entry_dir)
            image_id = self._read_image_id(key)
            try:
                dest = self.image_store.reference_for(image_id)
            except ValueError as e:
                raise CorruptEntryError(f"invalid image id in marker: {e}",
                                        key=key, backend=self.name) from e

            check_cancelled(token, key=key, backend=self.name)
            try:
                self.transfer.copy_image(policy_context, dest, src, token)
            except OperationCancelled:
                raise
            except Exception as e:
                raise TransferError(f"failed to obtain the image: {e}",
                                    key=key, backend=self.name) from e

        logger.debug("Loaded %s as image %s", key[:12], image_id)
        return image_id

    def store(self, key: str, image_id: str, token: Optional[CancelToken] = None) -> None:
        """Copy image_id out of the image store into the entry for key.

        The image is copied into a ``.<key>.store-*`` staging directory next
        to the entry, the ``imageID`` marker is written there, and only then
        is the directory renamed into place. A failed or cancelled store
        removes its staging directory and leaves no entry behind, so the next
        load is a miss and the store can be retried.
        """
        entry_dir = self.layout.key_dir(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ResourceError(f"failed to create cache root {self.root}: {e}",
                                key=key, backend=self.name) from e

        try:
            src = self.image_store.reference_for(image_id)
        except ValueError as e:
            raise TransferError(f"failed to obtain the image reference {image_id!r}: {e}",
                                key=key, backend=self.name) from e

        staging = self._make_staging_dir(key)
        try:
            with policy_scope(self.policy_provider, self.system_context,
                              key=key, backend=self.name) as policy_context:
                dest = DirectoryReference(staging)
                check_cancelled(token, key=key, backend=self.name)
                try:
                    self.transfer.copy_image(policy_context, dest, src, token)
                except OperationCancelled:
                    raise
                except Exception as e:
                    raise TransferError(f"failed to store image {image_id!r}: {e}",
                                        key=key, backend=self.name) from e

            try:
                atomic_write_text(staging / IMAGE_ID_FILE, image_id)
                self._promote(key, staging, entry_dir)
            except OSError as e:
                raise ResourceError(f"failed to publish entry {entry_dir}: {e}",
                                    key=key, backend=self.name) from e
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        logger.debug("Stored image %s as %s", image_id, key[:12])

    def _make_staging_dir(self, key: str) -> Path:
        try:
            return Path(tempfile.mkdtemp(prefix=f".{key}.store-", dir=self.root))
        except OSError as e:
            raise ResourceError(f"failed to create staging directory in {self.root}: {e}",
                                key=key, backend=self.name) from e

    def _promote(self, key: str, staging: Path, entry_dir: Path) -> None:
        """Rename staging to entry_dir, replacing an existing entry."""
        if not entry_dir.exists():
            os.rename(staging, entry_dir)
            return

        # Old entry moves aside and comes back if the swap fails
        retired = Path(tempfile.mkdtemp(prefix=f".{key}.old-", dir=self.root))
        try:
            os.rename(entry_dir, retired / key)
            try:
                os.rename(staging, entry_dir)
            except OSError:
                os.rename(retired / key, entry_dir)
                raise
        finally:
            shutil.rmtree(retired, ignore_errors=True)

    def _read_image_id(self, key: str) -> str:
        path = self.layout.image_id_path(key)
        try:
            image_id = self.layout.read_image_id(key)
        except FileNotFoundError as e:
            raise CorruptEntryError(f"entry has no {path.name} marker",
                                    key=key, backend=self.name) from e
        except UnicodeDecodeError as e:
            raise CorruptEntryError(f"{path.name} marker is not valid UTF-8",
                                    key=key, backend=self.name) from e
        except OSError as e:
            raise ResourceError(f"failed to read {path}: {e}",
                                key=key, backend=self.name) from e
        if not image_id:
            raise CorruptEntryError(f"entry has an empty {path.name} marker",
                                    key=key, backend=self.name)
        return image_id
