"""Base protocol for cache providers."""

from typing import Optional, Protocol, runtime_checkable

from ..cancel import CancelToken


@runtime_checkable
class CacheProvider(Protocol):
    """
    Protocol for layer cache backends.

    A miss is an empty image id, never an exception. Any raised error means
    the attempt could not be completed and must not be read as a miss.
    """

    def populate_layer(self, top_layer: str, token: Optional[CancelToken] = None) -> None:
        """
        Warm-up hook called before a build starts.

        Args:
            top_layer: Id of the top layer of the base image
            token: Optional cancellation token
        """
        ...

    def load(self, key: str, token: Optional[CancelToken] = None) -> str:
        """
        Materialize the cached image for key into the image store.

        Args:
            key: Cache key from derive_cache_key
            token: Optional cancellation token

        Returns:
            Image id now present in the image store, or "" on a miss
        """
        ...

    def store(self, key: str, image_id: str, token: Optional[CancelToken] = None) -> None:
        """
        Publish the image currently at image_id under key.

        Args:
            key: Cache key from derive_cache_key
            image_id: Id of the image in the image store
            token: Optional cancellation token
        """
        ...
