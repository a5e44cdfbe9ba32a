"""Cache providers: the backend contract and its implementations."""

from .base import CacheProvider
from .cascade import CascadeProvider
from .local import LocalDirectoryProvider
from .remote import RemoteObjectProvider

__all__ = [
    "CacheProvider",
    "CascadeProvider",
    "LocalDirectoryProvider",
    "RemoteObjectProvider",
]
