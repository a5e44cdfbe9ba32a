"""Tests for RemoteObjectProvider synchronization and publishing."""

import json

import pytest

from layer_cache.cancel import CancelToken
from layer_cache.errors import (
    CorruptEntryError,
    MalformedManifestError,
    OperationCancelled,
    SynchronizationError,
    TransferError,
    UploadError,
)
from layer_cache.providers import RemoteObjectProvider


def _manifest(*layer_digests, config=None):
    data = {
        "schemaVersion": 2,
        "layers": [
            {"mediaType": "application/vnd.oci.image.layer.v1.tar", "digest": d, "size": 10}
            for d in layer_digests
        ],
    }
    if config:
        data["config"] = {"digest": config, "size": 10}
    return json.dumps(data).encode()


def seed_remote_entry(object_store, key="abc123", image_id="sha256:cafef00d"):
    """Remote entry with one layer and no config reference."""
    object_store.seed(f"{key}/imageID", image_id.encode())
    object_store.seed(f"{key}/manifest.json", _manifest("sha256:0011223344"))
    object_store.seed(f"{key}/blobs/0011223344", b"layer-bytes")


class TestColdCache:
    def test_no_local_no_remote_is_miss(self, remote_provider, object_store, policy_provider):
        assert remote_provider.load("abc123") == ""
        assert object_store.list_calls == 1
        assert object_store.get_calls == 0
        assert policy_provider.acquired == 0
        assert not (remote_provider.mirror_root / "abc123").exists()

    def test_prefix_does_not_match_longer_keys(self, remote_provider, object_store):
        """Objects of key "abc1234" are not part of key "abc123"."""
        seed_remote_entry(object_store, key="abc1234")
        assert remote_provider.load("abc123") == ""


class TestRemoteOnlyHit:
    def test_synchronizes_and_loads(self, remote_provider, object_store, image_store):
        seed_remote_entry(object_store)

        assert remote_provider.load("abc123") == "sha256:cafef00d"

        entry = remote_provider.mirror_root / "abc123"
        assert (entry / "imageID").read_bytes() == b"sha256:cafef00d"
        assert (entry / "manifest.json").exists()
        assert (entry / "blobs" / "0011223344").read_bytes() == b"layer-bytes"
        assert image_store.materialized == ["sha256:cafef00d"]

    def test_no_staging_left_behind(self, remote_provider, object_store):
        seed_remote_entry(object_store)
        remote_provider.load("abc123")
        assert sorted(p.name for p in remote_provider.mirror_root.iterdir()) == ["abc123"]

    def test_second_load_makes_no_remote_calls(self, remote_provider, object_store):
        seed_remote_entry(object_store)
        remote_provider.load("abc123")
        lists, gets = object_store.list_calls, object_store.get_calls

        assert remote_provider.load("abc123") == "sha256:cafef00d"
        assert object_store.list_calls == lists
        assert object_store.get_calls == gets

    def test_fetches_layer_blob_not_in_listing(self, remote_provider, object_store, monkeypatch):
        """Layer blobs are fetched individually when the listing missed them."""
        seed_remote_entry(object_store)
        original_list = object_store.list

        def list_without_blobs(prefix):
            return [k for k in original_list(prefix) if "/blobs/" not in k]

        monkeypatch.setattr(object_store, "list", list_without_blobs)
        assert remote_provider.load("abc123") == "sha256:cafef00d"
        assert (remote_provider.mirror_root / "abc123" / "blobs" / "0011223344").exists()

    def test_config_blob_fetched_when_manifest_declares_config(self, remote_provider, object_store):
        object_store.seed("abc123/imageID", b"sha256:cafef00d")
        object_store.seed("abc123/manifest.json",
                          _manifest("sha256:0011223344", config="sha256:cafef00d"))
        object_store.seed("abc123/blobs/0011223344", b"layer-bytes")
        object_store.seed("abc123/blobs/cafef00d", b'{"config": 1}')

        assert remote_provider.load("abc123") == "sha256:cafef00d"
        assert (remote_provider.mirror_root / "abc123" / "blobs" / "cafef00d").exists()

    def test_with_prefix(self, tmp_path, image_store, transfer, policy_provider, object_store):
        provider = RemoteObjectProvider(image_store, policy_provider, transfer,
                                        tmp_path / "mirror", object_store, prefix="/team/cache/")
        object_store.seed("team/cache/abc123/imageID", b"sha256:cafef00d")
        object_store.seed("team/cache/abc123/manifest.json", _manifest("sha256:0011223344"))
        object_store.seed("team/cache/abc123/blobs/0011223344", b"layer-bytes")
        assert provider.object_key("abc123", "imageID") == "team/cache/abc123/imageID"
        assert provider.load("abc123") == "sha256:cafef00d"


class TestSynchronizationFailures:
    def test_listing_error_is_not_a_miss(self, remote_provider, object_store):
        object_store.fail_list = True
        with pytest.raises(SynchronizationError, match="list"):
            remote_provider.load("abc123")

    def test_missing_image_id(self, remote_provider, object_store):
        object_store.seed("abc123/manifest.json", _manifest())
        with pytest.raises(SynchronizationError, match="imageID"):
            remote_provider.load("abc123")
        assert not (remote_provider.mirror_root / "abc123").exists()

    def test_missing_manifest(self, remote_provider, object_store):
        object_store.seed("abc123/imageID", b"sha256:cafef00d")
        with pytest.raises(SynchronizationError, match="manifest.json"):
            remote_provider.load("abc123")

    def test_malformed_layer_digest(self, remote_provider, object_store):
        object_store.seed("abc123/imageID", b"sha256:cafef00d")
        object_store.seed("abc123/manifest.json", _manifest("sha2"))
        with pytest.raises(MalformedManifestError):
            remote_provider.load("abc123")
        assert not (remote_provider.mirror_root / "abc123").exists()

    def test_unparseable_manifest(self, remote_provider, object_store):
        object_store.seed("abc123/imageID", b"sha256:cafef00d")
        object_store.seed("abc123/manifest.json", b"<html>")
        with pytest.raises(MalformedManifestError):
            remote_provider.load("abc123")

    def test_missing_layer_blob(self, remote_provider, object_store):
        object_store.seed("abc123/imageID", b"sha256:cafef00d")
        object_store.seed("abc123/manifest.json", _manifest("sha256:0011223344"))
        with pytest.raises(SynchronizationError, match="blobs/0011223344"):
            remote_provider.load("abc123")

    def test_missing_config_blob(self, remote_provider, object_store):
        seed_remote_entry(object_store)
        object_store.seed("abc123/manifest.json",
                          _manifest("sha256:0011223344", config="sha256:cafef00d"))
        with pytest.raises(SynchronizationError, match="cafef00d"):
            remote_provider.load("abc123")

    def test_zero_byte_blob_is_error(self, remote_provider, object_store, monkeypatch):
        seed_remote_entry(object_store)
        object_store.seed("abc123/blobs/0011223344", b"")
        original_list = object_store.list
        monkeypatch.setattr(object_store, "list",
                            lambda prefix: [k for k in original_list(prefix) if "/blobs/" not in k])

        with pytest.raises(SynchronizationError, match="empty"):
            remote_provider.load("abc123")

    def test_failed_sync_is_retried(self, remote_provider, object_store):
        """A failed sync leaves no mirror directory, so the next load syncs again."""
        object_store.seed("abc123/imageID", b"sha256:cafef00d")
        object_store.seed("abc123/manifest.json", _manifest("sha256:0011223344"))
        with pytest.raises(SynchronizationError):
            remote_provider.load("abc123")

        object_store.seed("abc123/blobs/0011223344", b"layer-bytes")
        assert remote_provider.load("abc123") == "sha256:cafef00d"

    def test_unsafe_object_key(self, remote_provider, object_store, monkeypatch):
        monkeypatch.setattr(object_store, "list", lambda prefix: ["abc123/../../evil"])
        with pytest.raises(SynchronizationError, match="Unsafe"):
            remote_provider.load("abc123")

    def test_cancelled_mid_sync(self, remote_provider, object_store):
        seed_remote_entry(object_store)
        token = CancelToken()
        original_get = object_store.get

        def get_then_cancel(key, dest):
            size = original_get(key, dest)
            token.cancel()
            return size

        object_store.get = get_then_cancel
        with pytest.raises(OperationCancelled):
            remote_provider.load("abc123", token)
        assert list(remote_provider.mirror_root.iterdir()) == []


class TestPublish:
    def test_store_uploads_every_file(self, remote_provider, object_store):
        remote_provider.store("abc123", "sha256:deadbeef")

        keys = sorted(object_store.list("abc123/"))
        assert "abc123/imageID" in keys
        assert "abc123/manifest.json" in keys
        assert "abc123/blobs/deadbeef" in keys
        assert len(keys) == 4
        assert object_store.put_calls == 4

    def test_round_trip_through_fresh_mirror(self, tmp_path, image_store, transfer,
                                             policy_provider, object_store, remote_provider):
        """Store on one machine, load on another sharing only the bucket."""
        remote_provider.store("abc123", "sha256:deadbeef")

        other = RemoteObjectProvider(image_store, policy_provider, transfer,
                                     tmp_path / "other-mirror", object_store)
        assert other.load("abc123") == "sha256:deadbeef"

    def test_store_then_load_same_provider(self, remote_provider, object_store):
        remote_provider.store("abc123", "sha256:deadbeef")
        lists = object_store.list_calls
        assert remote_provider.load("abc123") == "sha256:deadbeef"
        assert object_store.list_calls == lists

    def test_upload_failure_aborts(self, remote_provider, object_store):
        object_store.fail_put_after = 1
        with pytest.raises(UploadError) as exc_info:
            remote_provider.store("abc123", "sha256:deadbeef")
        assert exc_info.value.object_key.startswith("abc123/")
        assert object_store.put_calls == 1

    def test_uploads_are_unconditional(self, remote_provider, object_store):
        remote_provider.store("abc123", "sha256:deadbeef")
        assert remote_provider.publish("abc123") == 4
        assert object_store.put_calls == 8

    def test_publish_without_entry(self, remote_provider):
        with pytest.raises(CorruptEntryError):
            remote_provider.publish("abc123")


def test_populate_layer_makes_no_remote_calls(remote_provider, object_store):
    remote_provider.populate_layer("sha256:top")
    assert object_store.list_calls == 0


class TestFolderMarkers:
    """Zero-byte "dir/" objects left by S3 consoles and sync tools."""

    def test_markers_are_skipped(self, remote_provider, object_store, monkeypatch):
        seed_remote_entry(object_store)
        original_list = object_store.list
        monkeypatch.setattr(object_store, "list", lambda prefix: [
            "abc123/", "abc123/blobs/", *original_list(prefix)])

        assert remote_provider.load("abc123") == "sha256:cafef00d"
        assert (remote_provider.mirror_root / "abc123" / "blobs").is_dir()
        assert object_store.get_calls == 3

    def test_only_markers_is_miss(self, remote_provider, object_store, monkeypatch):
        monkeypatch.setattr(object_store, "list", lambda prefix: ["abc123/", "abc123/blobs/"])
        assert remote_provider.load("abc123") == ""
        assert object_store.get_calls == 0


class TestInterruptedMirrorStore:
    def test_failed_store_does_not_hide_remote_entry(self, remote_provider, object_store,
                                                     transfer, monkeypatch):
        seed_remote_entry(object_store)
        original = transfer.copy_image

        def copy_then_fail(policy_context, dest, src, token=None):
            original(policy_context, dest, src, token)
            raise RuntimeError("disk full mid-copy")

        monkeypatch.setattr(transfer, "copy_image", copy_then_fail)
        with pytest.raises(TransferError):
            remote_provider.store("abc123", "sha256:deadbeef")
        assert object_store.put_calls == 0

        monkeypatch.setattr(transfer, "copy_image", original)
        assert remote_provider.load("abc123") == "sha256:cafef00d"

    def test_image_id_marker_trailing_newline(self, remote_provider, object_store):
        seed_remote_entry(object_store, image_id="sha256:cafef00d\n")
        assert remote_provider.load("abc123") == "sha256:cafef00d"
        assert (remote_provider.mirror_root / "abc123" / "imageID").read_bytes() == \
            b"sha256:cafef00d\n"
