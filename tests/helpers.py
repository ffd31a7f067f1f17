"""Test doubles for the image runtime and cache store."""

import asyncio
from pathlib import Path
from typing import Sequence

from compose_image_cache.core.types import (
    CacheRestoreResult,
    CacheSaveResult,
    LocalImageMetadata,
    ManifestInfo,
    OperationResult,
)

DIGEST_A = "sha256:" + "a" * 64
DIGEST_B = "sha256:" + "b" * 64

CACHE_KEY_PREFIX = "test-cache"


class FakeRuntime:
    """In-memory stand-in for ImageRuntimeGateway.

    Remote digests are given per image either as a single value (returned on
    every lookup) or as a list consumed one lookup at a time; the last list
    item repeats once the list is exhausted.
    """

    def __init__(
        self,
        digests: dict | None = None,
        pull_fails: Sequence[str] = (),
        load_ok: bool = True,
        save_ok: bool = True,
        size: int = 1024,
        delays: dict | None = None,
    ) -> None:
        self.digests = dict(digests or {})
        self.pull_fails = set(pull_fails)
        self.load_ok = load_ok
        self.save_ok = save_ok
        self.size = size
        self.delays = dict(delays or {})
        self.calls: list[tuple] = []
        self.loaded_archives: list[bytes] = []

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    async def pull(self, image: str, platform: str | None = None) -> OperationResult:
        self.calls.append(("pull", image, platform))
        await asyncio.sleep(self.delays.get(image, 0))
        if image in self.pull_fails:
            return OperationResult.failure(f"Failed to pull image {image}")
        return OperationResult.success()

    async def inspect_remote_manifest(self, image: str) -> ManifestInfo | None:
        self.calls.append(("inspect_remote_manifest", image))
        value = self.digests.get(image)
        if isinstance(value, list):
            value = value.pop(0) if len(value) > 1 else (value[0] if value else None)
        if value is None:
            return None
        return ManifestInfo(digest=value, raw={"mediaType": "application/vnd.oci.image.index.v1+json"})

    async def inspect_local(self, image: str) -> LocalImageMetadata | None:
        self.calls.append(("inspect_local", image))
        return LocalImageMetadata(size_bytes=self.size)

    async def save_to_archive(self, image: str, path: str) -> OperationResult:
        self.calls.append(("save_to_archive", image, path))
        if not self.save_ok:
            return OperationResult.failure(f"Failed to save image {image} to {path}")
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        Path(path).write_bytes(f"archive:{image}".encode("utf-8"))
        return OperationResult.success()

    async def load_from_archive(self, path: str) -> OperationResult:
        self.calls.append(("load_from_archive", path))
        if not self.load_ok:
            return OperationResult.failure(f"Failed to load image from {path}")
        self.loaded_archives.append(Path(path).read_bytes())
        return OperationResult.success()


class RecordingCacheStore:
    """Wraps a cache store and records every call."""

    def __init__(self, store) -> None:
        self.store = store
        self.calls: list[tuple] = []

    async def restore(
        self, paths: Sequence[str], key: str, restore_keys: Sequence[str] = ()
    ) -> CacheRestoreResult:
        self.calls.append(("restore", key, tuple(restore_keys)))
        return await self.store.restore(paths, key, restore_keys)

    async def save(self, paths: Sequence[str], key: str) -> CacheSaveResult:
        self.calls.append(("save", key))
        return await self.store.save(paths, key)

    def saved_keys(self) -> list[str]:
        return [call[1] for call in self.calls if call[0] == "save"]


class BrokenCacheStore:
    """Cache store whose backend is unreachable."""

    async def restore(self, paths, key, restore_keys=()):
        raise OSError("cache service unreachable")

    async def save(self, paths, key):
        raise OSError("cache service unreachable")


def read_outputs(path) -> dict[str, str]:
    """Parse heredoc-style GITHUB_OUTPUT content."""
    outputs = {}
    lines = iter(Path(path).read_text().splitlines())
    for line in lines:
        name, _, delimiter = line.partition("<<")
        value = []
        for body in lines:
            if body == delimiter:
                break
            value.append(body)
        outputs[name] = "\n".join(value)
    return outputs
