"""Custom exceptions for layer-cache.

This module defines typed exceptions for the cache providers. A cache miss
is never an exception: providers return an empty image id for that. Every
other failure surfaces as one of the classes below, annotated with the cache
key and the backend that raised it.
"""

from typing import Optional


class LayerCacheError(RuntimeError):
    """Base class for all layer cache errors."""

    def __init__(self, message: str, key: Optional[str] = None, backend: Optional[str] = None):
        self.key = key
        self.backend = backend
        prefix = ""
        if backend:
            prefix += f"[{backend}] "
        if key:
            prefix += f"layer {key[:12]}: "
        super().__init__(prefix + message)


class InvalidKeyError(ValueError):
    """Cache key cannot be used as a path segment or object key prefix."""
    pass


# Transfer Errors
class TransferError(LayerCacheError):
    """Image transfer engine failed to copy or materialize an image."""
    pass


# Entry Errors
class CorruptEntryError(LayerCacheError):
    """Entry directory exists but is not a usable cache entry."""
    pass


class SynchronizationError(CorruptEntryError):
    """Remote synchronization failed or produced an incomplete entry."""
    pass


class MalformedManifestError(SynchronizationError):
    """manifest.json could not be parsed or declares an invalid digest."""
    pass


# Resource Errors
class ResourceError(LayerCacheError):
    """Filesystem or scoped-resource failure."""
    pass


class PolicyContextError(ResourceError):
    """Policy context could not be acquired or released."""
    pass


# Upload Errors
class UploadError(LayerCacheError):
    """Publishing an entry to the remote object store failed."""

    def __init__(self, message: str, key: Optional[str] = None, backend: Optional[str] = None,
                 object_key: Optional[str] = None):
        self.object_key = object_key
        super().__init__(message, key=key, backend=backend)


class OperationCancelled(LayerCacheError):
    """The caller cancelled the operation before it completed."""
    pass


# Configuration Errors
class ConfigError(LayerCacheError):
    """Invalid or unreadable configuration."""
    pass


# Object store client errors
class ObjectStoreError(RuntimeError):
    """Remote object store request failed."""
    pass


class ObjectNotFoundError(ObjectStoreError):
    """Requested object does not exist in the remote store."""

    def __init__(self, key: str):
        self.object_key = key
        super().__init__(f"Object not found: {key}")
