"""Tests for the directory cache store and its gateway."""

import os

import pytest

from compose_image_cache.cache.manifest import read_manifest, write_manifest
from compose_image_cache.cache.store import CacheStoreGateway, DirectoryCacheStore
from compose_image_cache.core.types import ManifestInfo
from tests.helpers import DIGEST_A, BrokenCacheStore


@pytest.fixture
def store(tmp_path):
    return DirectoryCacheStore(tmp_path / "cache")


def write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return str(path)


class TestDirectoryCacheStore:
    """Save and restore behaviour."""

    @pytest.mark.asyncio
    async def test_exact_key_round_trip(self, store, tmp_path):
        source = write(tmp_path / "src" / "image.tar", b"layers")
        saved = await store.save([source], "key-1")
        assert saved.saved is True

        target = tmp_path / "dst" / "image.tar"
        result = await store.restore([str(target)], "key-1")
        assert result.restored is True
        assert result.matched_key == "key-1"
        assert target.read_bytes() == b"layers"

    @pytest.mark.asyncio
    async def test_missing_key_is_not_an_error(self, store, tmp_path):
        result = await store.restore([str(tmp_path / "x.tar")], "absent")
        assert result.restored is False
        assert result.matched_key is None

    @pytest.mark.asyncio
    async def test_restore_key_picks_newest_entry(self, store, tmp_path):
        old = write(tmp_path / "old.tar", b"old")
        new = write(tmp_path / "new.tar", b"new")
        await store.save([old], "app-1-linux-aaaa")
        await store.save([new], "app-1-linux-bbbb")

        old_entry = next(p for p in store.root.iterdir() if "aaaa" in p.name)
        new_entry = next(p for p in store.root.iterdir() if "bbbb" in p.name)
        os.utime(old_entry, (1_000_000, 1_000_000))
        os.utime(new_entry, (2_000_000, 2_000_000))

        target = tmp_path / "restored.tar"
        result = await store.restore([str(target)], "app-1-linux-none", ["app-1-linux-"])
        assert result.restored is True
        assert result.matched_key == "app-1-linux-bbbb"
        assert target.read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_restore_keys_are_tried_in_order(self, store, tmp_path):
        await store.save([write(tmp_path / "a.tar", b"a")], "first-x")
        await store.save([write(tmp_path / "b.tar", b"b")], "second-x")

        result = await store.restore(
            [str(tmp_path / "out.tar")], "missing", ["nothing-", "second-", "first-"]
        )
        assert result.matched_key == "second-x"

    @pytest.mark.asyncio
    async def test_prefix_never_matches_other_file_kinds(self, store, tmp_path):
        manifest = write(tmp_path / "m.json", b"{}")
        await store.save([manifest], "app-1-aaaa-manifest")

        result = await store.restore([str(tmp_path / "out.tar")], "app-1-none", ["app-1-"])
        assert result.restored is False

    @pytest.mark.asyncio
    async def test_entries_are_immutable(self, store, tmp_path):
        await store.save([write(tmp_path / "a.tar", b"first")], "key")
        second = await store.save([write(tmp_path / "b.tar", b"second")], "key")
        assert second.saved is False
        assert "already exists" in second.reason

        target = tmp_path / "out.tar"
        await store.restore([str(target)], "key")
        assert target.read_bytes() == b"first"

    @pytest.mark.asyncio
    async def test_save_with_missing_path(self, store, tmp_path):
        result = await store.save([str(tmp_path / "missing.tar")], "key")
        assert result.saved is False
        assert "Paths not found" in result.reason

    @pytest.mark.asyncio
    async def test_keys_with_special_characters(self, store, tmp_path):
        source = write(tmp_path / "a.tar", b"data")
        await store.save([source], "prefix/with:odd chars")

        result = await store.restore([str(tmp_path / "b.tar")], "x", ["prefix/with"])
        assert result.matched_key == "prefix/with:odd chars"


class TestCacheStoreGateway:
    """Transport failures become results."""

    @pytest.mark.asyncio
    async def test_unreachable_store_is_a_miss(self, tmp_path):
        gateway = CacheStoreGateway(BrokenCacheStore())
        result = await gateway.restore([str(tmp_path / "a.tar")], "key", ["k"])
        assert result.restored is False

    @pytest.mark.asyncio
    async def test_unreachable_store_save_is_reported(self, tmp_path):
        gateway = CacheStoreGateway(BrokenCacheStore())
        result = await gateway.save([str(tmp_path / "a.tar")], "key")
        assert result.saved is False
        assert "unreachable" in result.reason

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, store, tmp_path):
        gateway = CacheStoreGateway(store)
        await gateway.save([write(tmp_path / "a.tar", b"data")], "key")
        for entry in store.root.iterdir():
            entry.write_bytes(b"not a tar archive")

        result = await gateway.restore([str(tmp_path / "out.tar")], "key")
        assert result.restored is False
        assert "corrupt" in result.error

    @pytest.mark.asyncio
    async def test_corrupt_entry_can_be_saved_again(self, store, tmp_path):
        gateway = CacheStoreGateway(store)
        await gateway.save([write(tmp_path / "a.tar", b"old")], "key")
        for entry in store.root.iterdir():
            entry.write_bytes(b"not a tar archive")
        await gateway.restore([str(tmp_path / "out.tar")], "key")

        saved = await gateway.save([write(tmp_path / "b.tar", b"new")], "key")
        assert saved.saved is True

        target = tmp_path / "restored.tar"
        result = await gateway.restore([str(target)], "key")
        assert result.restored is True
        assert target.read_bytes() == b"new"


class TestManifestSnapshot:
    """Manifest JSON files."""

    @pytest.mark.asyncio
    async def test_write_and_read(self, tmp_path):
        path = str(tmp_path / "nested" / "manifest.json")
        manifest = ManifestInfo(digest=DIGEST_A, raw={"schemaVersion": 2})

        assert await write_manifest(manifest, path) is True
        restored = await read_manifest(path)
        assert restored.digest == DIGEST_A
        assert restored.raw["schemaVersion"] == 2

    @pytest.mark.asyncio
    async def test_read_missing_or_invalid(self, tmp_path):
        assert await read_manifest(str(tmp_path / "missing.json")) is None

        invalid = tmp_path / "invalid.json"
        invalid.write_text("{not json")
        assert await read_manifest(str(invalid)) is None
