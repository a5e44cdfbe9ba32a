"""Composition of several providers into one logical cache."""

import logging
from typing import Iterable, Optional, Tuple

from ..cancel import CancelToken, check_cancelled
from .base import CacheProvider

logger = logging.getLogger(__name__)


class CascadeProvider:
    """Ordered, immutable list of providers acting as one cache.

    - load: first non-empty result wins; the first error aborts the call
      without trying later providers.
    - store: every provider receives the entry, in order; the first error
      aborts. Providers written before the failure keep their copy (no
      rollback), so backends can disagree about a key afterwards.
    - populate_layer: every provider, in order; first error aborts.
    """

    name = "cascade"

    def __init__(self, providers: Iterable[CacheProvider]):
        self._providers: Tuple[CacheProvider, ...] = tuple(providers)

    @property
    def providers(self) -> Tuple[CacheProvider, ...]:
        return self._providers

    def populate_layer(self, top_layer: str, token: Optional[CancelToken] = None) -> None:
        for provider in self._providers:
            check_cancelled(token, backend=self.name)
            provider.populate_layer(top_layer, token)

    def load(self, key: str, token: Optional[CancelToken] = None) -> str:
        for provider in self._providers:
            check_cancelled(token, key=key, backend=self.name)
            image_id = provider.load(key, token)
            if image_id:
                logger.debug("Cache hit for %s in %s", key[:12], _name(provider))
                return image_id
            logger.debug("Cache miss for %s in %s", key[:12], _name(provider))
        return ""

    def store(self, key: str, image_id: str, token: Optional[CancelToken] = None) -> None:
        for provider in self._providers:
            check_cancelled(token, key=key, backend=self.name)
            provider.store(key, image_id, token)
            logger.debug("Stored %s in %s", key[:12], _name(provider))


def _name(provider: CacheProvider) -> str:
    return getattr(provider, "name", type(provider).__name__)
