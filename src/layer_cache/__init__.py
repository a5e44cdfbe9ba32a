"""layer-cache: reusable image build layers across machines.

A build pipeline derives a key for the layer it is about to build, asks the
cache to load it, and on a miss builds the layer and stores it::

    key = derive_cache_key(manifest_type, adds_layer, parent, history, created_by, digests)
    image_id = cache.load(key)
    if not image_id:
        image_id = build()
        cache.store(key, image_id)
"""

from .cancel import CancelToken
from .config import CacheSettings, RemoteStoreConfig, load_settings
from .errors import (
    CorruptEntryError,
    LayerCacheError,
    MalformedManifestError,
    OperationCancelled,
    SynchronizationError,
    TransferError,
    UploadError,
)
from .factory import build_cache
from .fingerprint import HistoryEntry, derive_cache_key
from .providers import CacheProvider, CascadeProvider, LocalDirectoryProvider, RemoteObjectProvider

__all__ = [
    "CacheProvider",
    "CacheSettings",
    "CancelToken",
    "CascadeProvider",
    "CorruptEntryError",
    "HistoryEntry",
    "LayerCacheError",
    "LocalDirectoryProvider",
    "MalformedManifestError",
    "OperationCancelled",
    "RemoteObjectProvider",
    "RemoteStoreConfig",
    "SynchronizationError",
    "TransferError",
    "UploadError",
    "build_cache",
    "derive_cache_key",
    "load_settings",
]
