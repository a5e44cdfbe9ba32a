"""Build a cache provider stack from settings."""

import logging
from typing import List, Optional

from .config import CacheSettings
from .errors import ConfigError
from .policy import PolicyContextProvider
from .providers import CacheProvider, CascadeProvider, LocalDirectoryProvider, RemoteObjectProvider
from .storage import ObjectStore, make_object_store
from .transfer import ImageStore, ImageTransfer

logger = logging.getLogger(__name__)


def build_cache(
    settings: CacheSettings,
    image_store: ImageStore,
    transfer: ImageTransfer,
    policy_provider: PolicyContextProvider,
    object_store: Optional[ObjectStore] = None,
) -> CascadeProvider:
    """Create the cascade of providers named in settings.backends, in order.

    Args:
        settings: Loaded cache settings
        image_store: Local image store
        transfer: Image transfer engine
        policy_provider: Source of policy contexts
        object_store: Object store to use instead of one built from
            settings.remote

    Raises:
        ConfigError: If the remote backend is requested but cannot be built
    """
    providers: List[CacheProvider] = []
    for backend in settings.backends:
        if backend == "local":
            providers.append(LocalDirectoryProvider(
                image_store=image_store,
                policy_provider=policy_provider,
                transfer=transfer,
                root=settings.local_dir,
                system_context=settings.system,
            ))
        elif backend == "remote":
            store = object_store
            if store is None:
                try:
                    store = make_object_store(settings.remote)
                except (ValueError, NotImplementedError) as e:
                    raise ConfigError(f"Cannot build remote object store: {e}") from e
            if store is None:
                raise ConfigError("'remote' backend requires remote.provider")
            providers.append(RemoteObjectProvider(
                image_store=image_store,
                policy_provider=policy_provider,
                transfer=transfer,
                mirror_root=settings.mirror_dir,
                object_store=store,
                prefix=settings.remote.prefix,
                system_context=settings.system,
            ))

    logger.debug("Cache backends: %s", ", ".join(settings.backends))
    return CascadeProvider(providers)
