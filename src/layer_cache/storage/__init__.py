"""Storage package for remote object stores."""

from .base import ObjectStore
from .factory import make_object_store

__all__ = ["ObjectStore", "make_object_store"]
