"""Azure blob storage implementation."""

from pathlib import Path
from typing import Iterator

from ..errors import ObjectNotFoundError, ObjectStoreError


class AzureObjectStore:
    """
    Azure Blob Storage implementation.

    Object keys map one-to-one onto blob names inside the container.
    """

    def __init__(self, connection_string: str, container: str, container_client=None):
        """
        Initialize Azure object store.

        Args:
            connection_string: Azure Storage connection string
            container: Container name
            container_client: Pre-built ContainerClient (tests, custom auth)
        """
        self.container = container
        if container_client is not None:
            self.container_client = container_client
            return

        try:
            from azure.storage.blob import BlobServiceClient
        except ImportError:
            raise ImportError(
                "azure-storage-blob required for Azure blob storage. "
                "Install with: pip install azure-storage-blob"
            )

        client = BlobServiceClient.from_connection_string(connection_string)
        self.container_client = client.get_container_client(container)

        # Ensure container exists
        if not self.container_client.exists():
            self.container_client.create_container()

    def list(self, prefix: str) -> Iterator[str]:
        """List blob names starting with prefix."""
        from azure.core.exceptions import AzureError

        try:
            for blob in self.container_client.list_blobs(name_starts_with=prefix):
                yield blob.name
        except AzureError as e:
            raise ObjectStoreError(f"Failed to list azure://{self.container}/{prefix}: {e}") from e

    def get(self, key: str, dest: Path) -> int:
        """
        Download blob to dest.

        Returns:
            Number of bytes written
        """
        from azure.core.exceptions import AzureError, ResourceNotFoundError

        blob_client = self.container_client.get_blob_client(key)
        try:
            with open(dest, "wb") as f:
                return blob_client.download_blob().readinto(f)
        except ResourceNotFoundError as e:
            raise ObjectNotFoundError(key) from e
        except AzureError as e:
            raise ObjectStoreError(f"Failed to download azure://{self.container}/{key}: {e}") from e

    def put(self, key: str, path: Path) -> None:
        """Upload file, overwriting any existing blob."""
        from azure.core.exceptions import AzureError

        blob_client = self.container_client.get_blob_client(key)
        try:
            with open(path, "rb") as f:
                blob_client.upload_blob(f, overwrite=True)
        except AzureError as e:
            raise ObjectStoreError(f"Failed to upload azure://{self.container}/{key}: {e}") from e
