"""Cache provider mirroring entries to and from a remote object store.

Local mirror and remote namespace share one layout:

    <mirror>/<key>/<relpath>   <->   <prefix>/<key>/<relpath>

Load on a key with no mirror directory synchronizes the entry down first:

1. List every object under ``<prefix>/<key>/``, ignoring folder markers
   (keys ending in "/"). Nothing listed is a miss.
2. Download each object into a staging directory beside the final one.
3. Require a non-empty ``imageID`` marker and a parseable ``manifest.json``.
4. Fetch the config blob (named by the image id) and every layer blob the
   manifest declares, if the listing did not already bring them down.
5. Rename the staging directory into place.

After that the entry is materialized exactly as the local backend does.
Presence is existence-only: a file that is already there is never fetched or
checked again. Downloads go through temp files, so an interrupted transfer
never leaves a file at its final path, and a failed sync removes its staging
directory so the next call starts over.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from ..cancel import CancelToken, check_cancelled
from ..constants import BLOBS_DIR, IMAGE_ID_FILE, MANIFEST_FILE
from ..errors import (
    CorruptEntryError,
    MalformedManifestError,
    ObjectNotFoundError,
    ObjectStoreError,
    ResourceError,
    SynchronizationError,
    UploadError,
)
from ..fsutil import atomic_download, iter_entry_files, safe_target
from ..layout import read_marker, validate_key
from ..manifest import ImageManifest, blob_name, layer_blob_names
from ..policy import PolicyContextProvider
from ..storage.base import ObjectStore
from ..transfer import ImageStore, ImageTransfer, SystemContext
from .local import LocalDirectoryProvider

logger = logging.getLogger(__name__)


class RemoteObjectProvider:
    """Layer cache provider backed by a remote object store.

    The object store client is injected and reused for every call. A local
    mirror directory holds synchronized entries; it is a regular
    LocalDirectoryProvider root.
    """

    name = "remote"

    def __init__(
        self,
        image_store: ImageStore,
        policy_provider: PolicyContextProvider,
        transfer: ImageTransfer,
        mirror_root: Path,
        object_store: ObjectStore,
        prefix: str = "",
        system_context: Optional[SystemContext] = None,
    ):
        self.mirror = LocalDirectoryProvider(
            image_store=image_store,
            policy_provider=policy_provider,
            transfer=transfer,
            root=mirror_root,
            system_context=system_context,
        )
        self.object_store = object_store
        self.prefix = prefix.strip("/")

    @property
    def mirror_root(self) -> Path:
        return self.mirror.root

    def populate_layer(self, top_layer: str, token: Optional[CancelToken] = None) -> None:
        return None

    def load(self, key: str, token: Optional[CancelToken] = None) -> str:
        if not self.mirror.has_entry(key):
            if not self.synchronize(key, token):
                return ""
        return self.mirror.load(key, token)

    def store(self, key: str, image_id: str, token: Optional[CancelToken] = None) -> None:
        self.mirror.store(key, image_id, token)
        self.publish(key, token)

    # ---- Remote -> mirror ----------------------------------------------------

    def object_key(self, key: str, relpath: str = "") -> str:
        """Remote object key for a file of an entry."""
        parts = [p for p in (self.prefix, validate_key(key), relpath) if p]
        return "/".join(parts)

    def synchronize(self, key: str, token: Optional[CancelToken] = None) -> bool:
        """Bring an entry down from the remote store into the mirror.

        Returns:
            True if the entry is now in the mirror, False if the remote
            store has no objects for the key

        Raises:
            SynchronizationError: Listing or download failed, or the
                downloaded entry is incomplete
            MalformedManifestError: manifest.json is invalid
            OperationCancelled: token was cancelled
        """
        final_dir = self.mirror.layout.key_dir(key)
        if final_dir.exists():
            return True

        key_prefix = self.object_key(key) + "/"
        check_cancelled(token, key=key, backend=self.name)
        try:
            listed = list(self.object_store.list(key_prefix))
        except ObjectStoreError as e:
            raise SynchronizationError(f"failed to list remote objects: {e}",
                                       key=key, backend=self.name) from e

        # Keys ending in "/" are folder markers created by S3 consoles and sync
        # tools, not files of the entry
        object_keys = [k for k in listed if k.startswith(key_prefix) and not k.endswith("/")]

        if not object_keys:
            logger.debug("No remote objects for %s", key[:12])
            return False

        staging = self._make_staging_dir(key)
        try:
            for object_key in object_keys:
                relpath = object_key[len(key_prefix):]
                try:
                    target = safe_target(staging, relpath)
                except ValueError as e:
                    raise SynchronizationError(str(e), key=key, backend=self.name) from e
                self._download(key, object_key, target, token)

            image_id = self._staged_image_id(key, staging)
            manifest = self._staged_manifest(key, staging)

            if manifest.has_config:
                self._ensure_blob(key, staging, self._config_blob_name(key, image_id), token)
            for name in layer_blob_names(manifest, key=key, backend=self.name):
                self._ensure_blob(key, staging, name, token)

            self._promote(key, staging, final_dir)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.info("Synchronized %s from remote store (%d objects)", key[:12], len(object_keys))
        return True

    def _make_staging_dir(self, key: str) -> Path:
        root = self.mirror_root
        try:
            root.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=f".{key}.sync-", dir=root))
        except OSError as e:
            raise ResourceError(f"failed to create staging directory in {root}: {e}",
                                key=key, backend=self.name) from e

    def _download(self, key: str, object_key: str, target: Path,
                  token: Optional[CancelToken]) -> int:
        check_cancelled(token, key=key, backend=self.name)
        logger.debug("Downloading %s to %s", object_key, target)
        try:
            return atomic_download(lambda tmp: self.object_store.get(object_key, Path(tmp)), target)
        except ObjectNotFoundError as e:
            raise SynchronizationError(f"remote object missing: {object_key}",
                                       key=key, backend=self.name) from e
        except ObjectStoreError as e:
            raise SynchronizationError(f"failed to download {object_key}: {e}",
                                       key=key, backend=self.name) from e
        except OSError as e:
            raise ResourceError(f"failed to write {target}: {e}",
                                key=key, backend=self.name) from e

    def _ensure_blob(self, key: str, staging: Path, name: str,
                     token: Optional[CancelToken]) -> None:
        """Fetch blobs/<name> unless it already exists locally."""
        target = staging / BLOBS_DIR / name
        if target.exists():
            logger.debug("Blob %s already present, skipping download", name[:12])
            return

        object_key = self.object_key(key, f"{BLOBS_DIR}/{name}")
        size = self._download(key, object_key, target, token)
        if size == 0:
            target.unlink(missing_ok=True)
            raise SynchronizationError(f"remote blob {object_key} is empty",
                                       key=key, backend=self.name)
        logger.debug("Downloaded blob %s (%d bytes)", name[:12], size)

    def _staged_image_id(self, key: str, staging: Path) -> str:
        path = staging / IMAGE_ID_FILE
        if not path.exists():
            raise SynchronizationError(f"remote entry has no {IMAGE_ID_FILE} marker",
                                       key=key, backend=self.name)
        try:
            image_id = read_marker(path)
        except UnicodeDecodeError as e:
            raise SynchronizationError(f"remote {IMAGE_ID_FILE} marker is not valid UTF-8",
                                       key=key, backend=self.name) from e
        if not image_id:
            raise SynchronizationError(f"remote entry has an empty {IMAGE_ID_FILE} marker",
                                       key=key, backend=self.name)
        return image_id

    def _staged_manifest(self, key: str, staging: Path) -> ImageManifest:
        path = staging / MANIFEST_FILE
        if not path.exists():
            raise SynchronizationError(f"remote entry has no {MANIFEST_FILE}",
                                       key=key, backend=self.name)
        return ImageManifest.load(path, key=key, backend=self.name)

    def _config_blob_name(self, key: str, image_id: str) -> str:
        try:
            return blob_name(image_id) if ":" in image_id else blob_name(f"sha256:{image_id}")
        except ValueError as e:
            raise MalformedManifestError(f"image id cannot name a config blob: {e}",
                                         key=key, backend=self.name) from e

    def _promote(self, key: str, staging: Path, final_dir: Path) -> None:
        try:
            os.rename(staging, final_dir)
        except OSError:
            if final_dir.exists():
                # Another process published the same key first; keep theirs
                logger.warning("Entry %s appeared during sync, discarding staged copy", key[:12])
                shutil.rmtree(staging, ignore_errors=True)
                return
            raise

    # ---- Mirror -> remote ----------------------------------------------------

    def publish(self, key: str, token: Optional[CancelToken] = None) -> int:
        """Upload every file of a mirror entry to the remote store.

        Uploads are unconditional; existing objects are overwritten.

        Returns:
            Number of objects uploaded

        Raises:
            CorruptEntryError: The mirror has no directory for key
            UploadError: Any upload failed (the first failure aborts)
        """
        entry_dir = self.mirror.layout.key_dir(key)
        if not entry_dir.is_dir():
            raise CorruptEntryError("no local entry to publish", key=key, backend=self.name)

        files: List[Path] = list(iter_entry_files(entry_dir))
        for path in files:
            check_cancelled(token, key=key, backend=self.name)
            object_key = self.object_key(key, path.relative_to(entry_dir).as_posix())
            logger.debug("Uploading %s to %s", path, object_key)
            try:
                self.object_store.put(object_key, path)
            except (ObjectStoreError, OSError) as e:
                raise UploadError(f"failed to upload {object_key}: {e}",
                                  key=key, backend=self.name, object_key=object_key) from e

        logger.info("Published %s to remote store (%d objects)", key[:12], len(files))
        return len(files)
