"""Shared test fixtures and fakes for the cache collaborators."""

import hashlib
import json
from pathlib import Path

import pytest

from layer_cache.errors import ObjectStoreError
from layer_cache.policy import PolicyContext, SignaturePolicy
from layer_cache.providers import LocalDirectoryProvider, RemoteObjectProvider
from layer_cache.storage.fs import FilesystemObjectStore
from layer_cache.transfer import DirectoryReference, StoreReference


def _hex(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


class FakeImageStore:
    """Image store that accepts any non-empty id."""

    def __init__(self):
        self.materialized = []

    def reference_for(self, image_id: str) -> StoreReference:
        if not image_id or "/" in image_id:
            raise ValueError(f"Invalid image id: {image_id!r}")
        return StoreReference(image_id=image_id)


class FakeTransfer:
    """Transfer engine writing/reading the cache entry layout.

    Store -> directory writes manifest.json, a config blob named after the
    image id and one layer blob. Directory -> store checks the manifest and
    records the image as materialized.
    """

    def __init__(self, image_store: FakeImageStore):
        self.image_store = image_store
        self.calls = []
        self.fail_with = None

    def copy_image(self, policy_context, dest, src, token=None):
        assert not policy_context.released, "transfer ran without a live policy context"
        self.calls.append((str(dest), str(src)))
        if self.fail_with is not None:
            raise self.fail_with

        if isinstance(src, StoreReference) and isinstance(dest, DirectoryReference):
            image_id = src.image_id
            config_name = image_id.split(":", 1)[-1]
            layer_hex = _hex(image_id)
            blobs = dest.path / "blobs"
            blobs.mkdir(parents=True, exist_ok=True)
            (blobs / config_name).write_bytes(b'{"config": true}')
            (blobs / layer_hex).write_bytes(b"layer-" + image_id.encode())
            manifest = {
                "schemaVersion": 2,
                "config": {"mediaType": "application/vnd.oci.image.config.v1+json",
                           "digest": image_id, "size": 16},
                "layers": [{"mediaType": "application/vnd.oci.image.layer.v1.tar",
                            "digest": f"sha256:{layer_hex}", "size": 10}],
            }
            (dest.path / "manifest.json").write_text(json.dumps(manifest))
        elif isinstance(src, DirectoryReference) and isinstance(dest, StoreReference):
            manifest = json.loads((src.path / "manifest.json").read_text())
            for layer in manifest["layers"]:
                blob = src.path / "blobs" / layer["digest"].split(":", 1)[1]
                assert blob.exists(), f"missing blob {blob}"
            self.image_store.materialized.append(dest.image_id)
        else:
            raise AssertionError(f"unexpected copy {src} -> {dest}")


class FakePolicyProvider:
    """Counts acquisitions and releases; can fail either step."""

    def __init__(self):
        self.acquired = 0
        self.contexts = []
        self.fail_acquire = False
        self.fail_release = False

    def acquire(self, system_context):
        if self.fail_acquire:
            raise RuntimeError("policy unavailable")
        self.acquired += 1
        provider = self

        class _Context(PolicyContext):
            def release(self):
                super().release()
                if provider.fail_release:
                    raise RuntimeError("release failed")

        ctx = _Context(SignaturePolicy.accept_anything())
        self.contexts.append(ctx)
        return ctx

    @property
    def released(self) -> int:
        return sum(1 for c in self.contexts if c.released)


class CountingObjectStore(FilesystemObjectStore):
    """Filesystem object store that counts calls and can inject failures."""

    def __init__(self, base_dir: Path):
        super().__init__(base_dir)
        self.list_calls = 0
        self.get_calls = 0
        self.put_calls = 0
        self.fail_list = False
        self.fail_put_after = None

    def list(self, prefix):
        self.list_calls += 1
        if self.fail_list:
            raise ObjectStoreError("connection reset")
        return super().list(prefix)

    def get(self, key, dest):
        self.get_calls += 1
        return super().get(key, dest)

    def put(self, key, path):
        if self.fail_put_after is not None and self.put_calls >= self.fail_put_after:
            raise ObjectStoreError("upload rejected")
        self.put_calls += 1
        super().put(key, path)

    def seed(self, key: str, content: bytes) -> None:
        """Place an object directly in the store."""
        path = self.base_dir / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)


@pytest.fixture
def image_store():
    return FakeImageStore()


@pytest.fixture
def transfer(image_store):
    return FakeTransfer(image_store)


@pytest.fixture
def policy_provider():
    return FakePolicyProvider()


@pytest.fixture
def object_store(tmp_path):
    return CountingObjectStore(tmp_path / "bucket")


@pytest.fixture
def local_provider(tmp_path, image_store, transfer, policy_provider):
    return LocalDirectoryProvider(
        image_store=image_store,
        policy_provider=policy_provider,
        transfer=transfer,
        root=tmp_path / "local",
    )


@pytest.fixture
def remote_provider(tmp_path, image_store, transfer, policy_provider, object_store):
    return RemoteObjectProvider(
        image_store=image_store,
        policy_provider=policy_provider,
        transfer=transfer,
        mirror_root=tmp_path / "mirror",
        object_store=object_store,
    )
