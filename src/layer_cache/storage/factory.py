"""Factory for creating object store instances."""

import os
from pathlib import Path
from typing import Optional

from ..config import RemoteStoreConfig
from .azure import AzureObjectStore
from .base import ObjectStore
from .fs import FilesystemObjectStore
from .s3 import S3ObjectStore


def validate_azure_config(config: RemoteStoreConfig) -> str:
    """
    Early validation of Azure configuration.

    Args:
        config: Remote store configuration to validate

    Returns:
        The connection string to use

    Raises:
        ValueError: If configuration is invalid
    """
    conn_str = config.connection_string or os.environ.get("AZURE_STORAGE_CONNECTION_STRING")
    if not conn_str:
        raise ValueError(
            "Set AZURE_STORAGE_CONNECTION_STRING or remote.connection_string "
            "for Azure blob storage"
        )
    return conn_str


def make_object_store(config: RemoteStoreConfig) -> Optional[ObjectStore]:
    """
    Create object store instance based on configuration.

    Args:
        config: Remote store configuration

    Returns:
        ObjectStore instance or None when no provider is configured

    Raises:
        ValueError: If configuration is invalid
        NotImplementedError: If provider is not supported
    """
    if not config.provider:
        return None

    if config.provider == "s3":
        return S3ObjectStore(
            bucket=config.bucket,
            endpoint=config.endpoint,
            region=config.region,
            access_key=config.access_key,
            secret_key=config.secret_key,
            path_style=config.path_style,
            acl=config.acl,
        )

    elif config.provider == "azure":
        conn_str = validate_azure_config(config)
        return AzureObjectStore(conn_str, config.bucket)

    elif config.provider == "fs":
        return FilesystemObjectStore(Path(config.bucket))

    else:
        raise NotImplementedError(f"Provider {config.provider} not supported")
