"""S3 (and S3-compatible) object store implementation."""

import logging
import shutil
from pathlib import Path
from typing import Iterator, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ObjectNotFoundError, ObjectStoreError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class S3ObjectStore:
    """
    S3 object store.

    The client is created once, at construction, and reused for every
    request. Works against AWS and S3-compatible endpoints (MinIO, Ceph).
    """

    def __init__(
        self,
        bucket: str,
        endpoint: Optional[str] = None,
        region: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        path_style: bool = True,
        acl: Optional[str] = None,
        client=None,
    ):
        """
        Initialize S3 object store.

        Args:
            bucket: Bucket name
            endpoint: Endpoint URL; scheme decides TLS ("http://" disables it)
            region: Bucket region
            access_key: Static access key id (None = default credential chain)
            secret_key: Static secret access key
            path_style: Use path-style addressing instead of virtual-hosted
            acl: Canned ACL applied to uploaded objects (e.g. "bucket-owner-full-control")
            client: Pre-built boto3 S3 client (tests, custom sessions)
        """
        self.bucket = bucket
        self.acl = acl or None
        if client is not None:
            self.client = client
            return

        config = Config(s3={"addressing_style": "path" if path_style else "virtual"})
        self.client = boto3.client(
            "s3",
            endpoint_url=endpoint or None,
            region_name=region or None,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            config=config,
        )

    def list(self, prefix: str) -> Iterator[str]:
        """List object keys with the given prefix, following pagination."""
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield obj["Key"]
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(f"Failed to list s3://{self.bucket}/{prefix}: {e}") from e

    def get(self, key: str, dest: Path) -> int:
        """
        Download object to dest.

        Returns:
            Number of bytes written
        """
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from e
            raise ObjectStoreError(f"Failed to get s3://{self.bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"Failed to get s3://{self.bucket}/{key}: {e}") from e

        body = response["Body"]
        try:
            with open(dest, "wb") as f:
                shutil.copyfileobj(body, f)
                written = f.tell()
        except (BotoCoreError, OSError) as e:
            raise ObjectStoreError(f"Failed to download s3://{self.bucket}/{key}: {e}") from e
        finally:
            body.close()

        logger.debug("Downloaded s3://%s/%s (%d bytes)", self.bucket, key, written)
        return written

    def put(self, key: str, path: Path) -> None:
        """Upload file, overwriting any existing object."""
        try:
            extra_args = {"ACL": self.acl} if self.acl else None
            self.client.upload_file(str(path), self.bucket, key, ExtraArgs=extra_args)
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise ObjectStoreError(f"Failed to upload s3://{self.bucket}/{key}: {e}") from e
