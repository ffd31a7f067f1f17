"""Keyed blob cache store and the gateway used by image processing."""

import asyncio
import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Protocol, Sequence
from urllib.parse import quote, unquote

from ..core.types import CacheRestoreResult, CacheSaveResult
from ..exceptions import CacheStoreError

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".tar"


class CacheStore(Protocol):
    """A key/blob cache that saves and restores groups of files."""

    async def restore(
        self, paths: Sequence[str], key: str, restore_keys: Sequence[str] = ()
    ) -> CacheRestoreResult: ...

    async def save(self, paths: Sequence[str], key: str) -> CacheSaveResult: ...


def cache_version(paths: Sequence[str]) -> str:
    """Version tag of an entry, derived from the file types it holds.

    Entries only match a restore request with the same number and kinds of
    files, so an archive entry can never be restored onto a manifest path.
    """
    kinds = "|".join(Path(p).suffix or "-" for p in paths)
    return hashlib.sha256(kinds.encode("utf-8")).hexdigest()[:8]


class DirectoryCacheStore:
    """Cache store that keeps one tar blob per key in a local directory.

    Saved entries are immutable; an entry that cannot be read is removed
    when a restore hits it. Restoring maps the saved files, in order,
    onto the requested paths, so an entry saved under one path can be
    restored under another (needed for prefix fallback restores).
    """

    def __init__(self, root: str | os.PathLike) -> None:
        """Initialize the store.

        Args:
            root: Directory holding cache entries (created on first save)
        """
        self.root = Path(root)

    def _entry_path(self, key: str, version: str) -> Path:
        return self.root / f"{quote(key, safe='')}.{version}{ENTRY_SUFFIX}"

    def _list_entries(self, version: str) -> list[tuple[str, Path]]:
        """List (key, path) of all entries with the given version."""
        if not self.root.is_dir():
            return []

        entries = []
        suffix = f".{version}{ENTRY_SUFFIX}"
        for entry in self.root.iterdir():
            if entry.is_file() and entry.name.endswith(suffix):
                entries.append((unquote(entry.name[: -len(suffix)]), entry))
        return entries

    def _find_entry(
        self, key: str, restore_keys: Sequence[str], version: str
    ) -> tuple[str, Path] | None:
        exact = self._entry_path(key, version)
        if exact.is_file():
            return key, exact

        entries = self._list_entries(version)
        for restore_key in restore_keys:
            candidates = [(k, p) for k, p in entries if k.startswith(restore_key)]
            if candidates:
                # Newest entry wins, key name breaks ties
                return max(candidates, key=lambda c: (c[1].stat().st_mtime, c[0]))
        return None

    def _discard_entry(self, entry_path: Path, key: str) -> None:
        """Delete an unreadable entry so the key can be saved again."""
        logger.warning(f"Removing unreadable cache entry {key}")
        entry_path.unlink(missing_ok=True)

    def _restore_sync(
        self, paths: Sequence[str], key: str, restore_keys: Sequence[str]
    ) -> CacheRestoreResult:
        version = cache_version(paths)
        try:
            found = self._find_entry(key, restore_keys, version)
        except OSError as e:
            raise CacheStoreError(f"Failed to look up cache entry {key}: {e}") from e
        if found is None:
            return CacheRestoreResult(restored=False)

        matched_key, entry_path = found
        try:
            with tarfile.open(entry_path, "r") as tar:
                for index, target in enumerate(paths):
                    member_name = f"{index}{Path(target).suffix}"
                    source = tar.extractfile(member_name)
                    if source is None:
                        raise KeyError(member_name)
                    Path(target).parent.mkdir(parents=True, exist_ok=True)
                    with source, open(target, "wb") as out:
                        shutil.copyfileobj(source, out)
        except (tarfile.TarError, KeyError) as e:
            self._discard_entry(entry_path, matched_key)
            raise CacheStoreError(
                f"Cache entry {matched_key} is corrupt and was removed: {e}"
            ) from e
        except OSError as e:
            raise CacheStoreError(
                f"Failed to restore cache entry {matched_key}: {e}"
            ) from e

        return CacheRestoreResult(restored=True, matched_key=matched_key)

    def _save_sync(self, paths: Sequence[str], key: str) -> CacheSaveResult:
        missing = [p for p in paths if not Path(p).is_file()]
        if missing:
            return CacheSaveResult(
                saved=False, key=key, reason=f"Paths not found: {', '.join(missing)}"
            )

        entry_path = self._entry_path(key, cache_version(paths))
        if entry_path.exists():
            return CacheSaveResult(
                saved=False, key=key, reason=f"Cache entry {key} already exists"
            )

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, partial = tempfile.mkstemp(dir=self.root, suffix=".partial")
            os.close(fd)
            try:
                with tarfile.open(partial, "w") as tar:
                    for index, source in enumerate(paths):
                        tar.add(source, arcname=f"{index}{Path(source).suffix}")
                os.replace(partial, entry_path)
            finally:
                if os.path.exists(partial):
                    os.unlink(partial)
            return CacheSaveResult(saved=True, key=key)
        except (tarfile.TarError, OSError) as e:
            raise CacheStoreError(f"Failed to save cache entry {key}: {e}") from e

    async def restore(
        self, paths: Sequence[str], key: str, restore_keys: Sequence[str] = ()
    ) -> CacheRestoreResult:
        """Restore files saved under key, or under the newest key with a prefix.

        Raises:
            CacheStoreError: If the entry exists but cannot be read
        """
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, self._restore_sync, list(paths), key, list(restore_keys)
        )

    async def save(self, paths: Sequence[str], key: str) -> CacheSaveResult:
        """Save files under key; existing keys are never overwritten.

        Raises:
            CacheStoreError: If the entry cannot be written
        """
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._save_sync, list(paths), key)


class CacheStoreGateway:
    """Wraps a cache store so that failures never escape as exceptions."""

    def __init__(self, store: CacheStore) -> None:
        self.store = store

    async def restore(
        self, paths: Sequence[str], key: str, restore_keys: Sequence[str] = ()
    ) -> CacheRestoreResult:
        """Restore files by exact key, then by fallback prefixes in order.

        Args:
            paths: Files to restore
            key: Exact cache key
            restore_keys: Key prefixes tried in order when the exact key is absent

        Returns:
            CacheRestoreResult; restored=False on a miss or a store failure,
            with the failure in error
        """
        try:
            result = await self.store.restore(paths, key, restore_keys)
        except (CacheStoreError, OSError) as e:
            logger.warning(f"Cache restore failed for {key}: {e}")
            return CacheRestoreResult(restored=False, error=str(e))

        if result.restored:
            logger.debug(f"Cache restored from key {result.matched_key}")
        else:
            logger.debug(f"Cache not found for key {key}")
        return result

    async def save(self, paths: Sequence[str], key: str) -> CacheSaveResult:
        """Save files under key.

        Returns:
            CacheSaveResult; saved=False if the entry exists or the store failed
        """
        try:
            result = await self.store.save(paths, key)
        except (CacheStoreError, OSError) as e:
            logger.warning(f"Cache save failed for {key}: {e}")
            return CacheSaveResult(saved=False, key=key, reason=str(e))

        if not result.saved:
            logger.info(f"Cache not saved for {key}: {result.reason}")
        return result
