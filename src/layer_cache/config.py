"""Cache configuration helpers."""

import os
from pathlib import Path
from typing import List, Literal, Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .constants import (
    CONFIG_FILE,
    ENV_CACHE_DIR,
    ENV_CONFIG,
    LAYER_CACHE_DIR,
    LOCAL_SUBDIR,
    MIRROR_SUBDIR,
)
from .errors import ConfigError
from .transfer import SystemContext


def _default_cache_dir() -> Path:
    return Path(platformdirs.user_cache_dir("layer-cache", "layer-cache"))


class RemoteStoreConfig(BaseModel):
    """
    Remote object store settings.

    An empty provider disables the remote backend.
    """
    provider: Literal["", "s3", "azure", "fs"] = ""
    bucket: str = ""                # Bucket, container, or fs directory
    endpoint: Optional[str] = None  # e.g. "http://minio:9000"
    region: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    path_style: bool = True         # Path-style addressing (MinIO needs it)
    prefix: str = ""                # Optional key namespace inside the bucket
    acl: Optional[str] = None       # S3 canned ACL for uploads
    connection_string: Optional[str] = None  # Azure only

    @model_validator(mode="after")
    def validate_bucket(self):
        if self.provider and not self.bucket:
            raise ValueError(f"remote.bucket required for provider '{self.provider}'")
        self.prefix = self.prefix.strip("/")
        return self


class CacheSettings(BaseModel):
    """Top-level cache settings."""

    cache_dir: Path = Field(default_factory=_default_cache_dir)
    backends: Optional[List[Literal["local", "remote"]]] = None
    remote: RemoteStoreConfig = Field(default_factory=RemoteStoreConfig)
    system: SystemContext = Field(default_factory=SystemContext)

    @model_validator(mode="after")
    def validate_backends(self):
        if self.backends is None:
            self.backends = ["local", "remote"] if self.remote.provider else ["local"]
        if len(set(self.backends)) != len(self.backends):
            raise ValueError("Duplicate entries in 'backends'")
        if "remote" in self.backends and not self.remote.provider:
            raise ValueError("'remote' backend requires remote.provider")
        return self

    @property
    def local_dir(self) -> Path:
        return self.cache_dir / LOCAL_SUBDIR

    @property
    def mirror_dir(self) -> Path:
        return self.cache_dir / MIRROR_SUBDIR


def default_config_path() -> Path:
    """LAYER_CACHE_CONFIG, else ./.layer-cache/config.yaml."""
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        return Path(env_path)
    return Path.cwd() / LAYER_CACHE_DIR / CONFIG_FILE


def _apply_env_overrides(data: dict) -> dict:
    """Overlay credentials and locations from the process environment."""
    if os.environ.get(ENV_CACHE_DIR):
        data["cache_dir"] = os.environ[ENV_CACHE_DIR]

    remote = dict(data.get("remote") or {})
    env_map = {
        "access_key": "AWS_ACCESS_KEY_ID",
        "secret_key": "AWS_SECRET_ACCESS_KEY",
        "endpoint": "AWS_ENDPOINT_URL",
        "region": "AWS_REGION",
        "connection_string": "AZURE_STORAGE_CONNECTION_STRING",
    }
    for field, var in env_map.items():
        if not remote.get(field) and os.environ.get(var):
            remote[field] = os.environ[var]
    if remote:
        data["remote"] = remote
    return data


def load_settings(path: Optional[Path] = None) -> CacheSettings:
    """Load cache settings from YAML plus environment overrides.

    A missing file yields defaults. An unreadable or invalid file raises.

    Raises:
        ConfigError: If the file cannot be parsed or fails validation
    """
    cfg_path = Path(path) if path else default_config_path()

    data: dict = {}
    if cfg_path.exists():
        try:
            data = yaml.safe_load(cfg_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {cfg_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{cfg_path} must contain a mapping")
    elif path is not None:
        raise ConfigError(f"Config file not found: {cfg_path}")

    try:
        return CacheSettings.model_validate(_apply_env_overrides(data))
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {cfg_path}: {e}") from e
