"""Per-image cache processing.

For each image the processor resolves the manifest digest, derives cache
keys from it and then takes one of these paths:

- cache miss or force refresh: pull, verify digest, save archive + manifest
- cache hit: load archive, optionally compare cached and remote digests
- no digest: restore the newest archive for the same name/tag/platform,
  but only when digest verification is skipped

Every decision is recorded as a ProcessingEvent on the returned outcome.
"""

import asyncio
import logging
from typing import Any

from ..cache.keys import derive_key_set
from ..cache.manifest import read_manifest, write_manifest
from ..cache.store import CacheStoreGateway
from ..core.types import (
    CacheKeySet,
    ImageReference,
    ImageSpec,
    ManifestInfo,
    ProcessingEvent,
    ProcessingOutcome,
)
from ..exceptions import InvalidImageReferenceError
from ..runtime.gateway import ImageRuntimeGateway

logger = logging.getLogger(__name__)


class EventRecorder:
    """Collects processing events for one image and mirrors them to logging."""

    def __init__(self, image: str) -> None:
        self.image = image
        self._events: list[ProcessingEvent] = []

    def record(self, level: int, message: str) -> None:
        self._events.append(ProcessingEvent(level=level, image=self.image, message=message))
        logger.log(level, message)

    def debug(self, message: str) -> None:
        self.record(logging.DEBUG, message)

    def info(self, message: str) -> None:
        self.record(logging.INFO, message)

    def warning(self, message: str) -> None:
        self.record(logging.WARNING, message)

    def outcome(self, **fields: Any) -> ProcessingOutcome:
        """Build the final outcome with the events recorded so far."""
        return ProcessingOutcome(image_name=self.image, events=tuple(self._events), **fields)


class ImageProcessor:
    """Decides per image whether the cached archive can be reused."""

    def __init__(
        self,
        runtime: ImageRuntimeGateway,
        cache: CacheStoreGateway,
        cache_key_prefix: str,
        skip_digest_verification: bool = False,
        force_refresh: bool = False,
        temp_dir: str | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            runtime: Container runtime gateway
            cache: Cache store gateway
            cache_key_prefix: Prefix for all cache keys
            skip_digest_verification: Trust cached archives without comparing
                digests, and allow fallback restores when the registry is down
            force_refresh: Ignore existing cache entries and always pull
            temp_dir: Directory for scratch archives and manifests
        """
        self.runtime = runtime
        self.cache = cache
        self.cache_key_prefix = cache_key_prefix
        self.skip_digest_verification = skip_digest_verification
        self.force_refresh = force_refresh
        self.temp_dir = temp_dir

    async def process(self, spec: ImageSpec) -> ProcessingOutcome:
        """Process one image. Never raises; failures are part of the outcome.

        Args:
            spec: Image and optional platform to process

        Returns:
            ProcessingOutcome for the image
        """
        recorder = EventRecorder(spec.image)
        try:
            return await self._process(spec, recorder)
        except Exception as e:
            logger.exception(f"Unexpected error while processing {spec.image}")
            recorder.warning(f"Unexpected error while processing {spec.image}: {e}")
            return recorder.outcome(
                success=False,
                restored_from_cache=False,
                platform=spec.platform,
                error=f"Unexpected error while processing {spec.image}: {e}",
            )

    async def _process(
        self, spec: ImageSpec, recorder: EventRecorder
    ) -> ProcessingOutcome:
        image = spec.image
        try:
            reference = ImageReference.parse(image, spec.platform)
        except InvalidImageReferenceError as e:
            recorder.warning(str(e))
            return recorder.outcome(
                success=False,
                restored_from_cache=False,
                platform=spec.platform,
                error=str(e),
            )

        manifest = await self.runtime.inspect_remote_manifest(image)
        if manifest is None or not manifest.digest:
            return await self._process_without_digest(reference, image, recorder)

        digest = manifest.digest
        keys = derive_key_set(self.cache_key_prefix, reference, digest, self.temp_dir)

        if reference.platform:
            recorder.info(f"Using platform {reference.platform} for {image}")
        recorder.info(f"Cache key for {image}: {keys.image_cache_key}")
        recorder.debug(f"Cache path: {keys.tar_path}")

        if self.force_refresh:
            recorder.info(f"Force refresh enabled for {image}, pulling fresh image")
            return await self._pull_and_cache(image, reference, keys, manifest, recorder)

        archive_result, manifest_result = await asyncio.gather(
            self.cache.restore([keys.tar_path], keys.image_cache_key),
            self.cache.restore([keys.manifest_path], keys.manifest_cache_key),
        )
        for result in (archive_result, manifest_result):
            if result.error:
                recorder.warning(f"Cache restore failed for {image}: {result.error}")

        if not archive_result.restored:
            recorder.info(f"Cache miss for {image}, pulling and saving")
            return await self._pull_and_cache(image, reference, keys, manifest, recorder)

        recorder.info(f"Cache hit for {image}, loading from cache")
        return await self._process_cache_hit(
            image, reference, keys, digest, manifest_result.restored, recorder
        )

    async def _process_without_digest(
        self, reference: ImageReference, image: str, recorder: EventRecorder
    ) -> ProcessingOutcome:
        """Handle an image whose digest could not be resolved."""
        if self.skip_digest_verification and not self.force_refresh:
            fallback = await self._restore_without_digest(reference, image, recorder)
            if fallback is not None:
                return fallback

        recorder.warning(f"Could not get digest for {image}, skipping cache")
        return recorder.outcome(
            success=False,
            restored_from_cache=False,
            platform=reference.platform,
            error=f"Could not get digest for {image}",
        )

    async def _restore_without_digest(
        self, reference: ImageReference, image: str, recorder: EventRecorder
    ) -> ProcessingOutcome | None:
        """Restore the newest cached archive for this name/tag/platform."""
        keys = derive_key_set(self.cache_key_prefix, reference, None, self.temp_dir)
        result = await self.cache.restore(
            [keys.tar_path], keys.image_cache_key, [keys.fallback_key_prefix]
        )
        if result.error:
            recorder.warning(f"Cache restore failed for {image}: {result.error}")
        if not result.restored:
            recorder.debug(f"No fallback cache entry for {image}")
            return None

        loaded = await self.runtime.load_from_archive(keys.tar_path)
        if not loaded.ok:
            recorder.debug(f"Failed to load image from fallback cache: {image}")
            return None

        metadata = await self.runtime.inspect_local(image)
        recorder.warning(
            f"Registry unavailable for {image}. Using cached version. "
            "Image may be outdated. Enable network access or set force-refresh "
            "to pull fresh images."
        )
        return recorder.outcome(
            success=True,
            restored_from_cache=True,
            cache_key=result.matched_key or "",
            digest=None,
            platform=reference.platform,
            image_size_bytes=metadata.size_bytes if metadata else None,
        )

    async def _pull_and_cache(
        self,
        image: str,
        reference: ImageReference,
        keys: CacheKeySet,
        manifest: ManifestInfo,
        recorder: EventRecorder,
    ) -> ProcessingOutcome:
        """Pull the image and store archive and manifest in the cache."""
        digest = manifest.digest

        def failed(error: str) -> ProcessingOutcome:
            recorder.warning(error)
            return recorder.outcome(
                success=False,
                restored_from_cache=False,
                cache_key=keys.image_cache_key,
                digest=digest,
                platform=reference.platform,
                error=error,
            )

        pulled = await self.runtime.pull(image, reference.platform)
        if not pulled.ok:
            return failed(f"Failed to pull image: {image}")

        # The tag may have moved between digest resolution and the pull
        current = await self.runtime.inspect_remote_manifest(image)
        current_digest = current.digest if current else None
        if current_digest != digest:
            return failed(
                f"Digest mismatch for {image}: expected {digest}, got {current_digest}"
            )

        saved = await self.runtime.save_to_archive(image, keys.tar_path)
        if not saved.ok:
            return failed(f"Failed to save image to tar: {image}")

        if await write_manifest(manifest, keys.manifest_path):
            await self.cache.save([keys.manifest_path], keys.manifest_cache_key)

        cache_result = await self.cache.save([keys.tar_path], keys.image_cache_key)
        if cache_result.saved:
            recorder.info(f"Cached {image} with key {keys.image_cache_key}")

        metadata = await self.runtime.inspect_local(image)
        return recorder.outcome(
            success=True,
            restored_from_cache=False,
            cache_key=keys.image_cache_key,
            digest=digest,
            platform=reference.platform,
            image_size_bytes=metadata.size_bytes if metadata else None,
        )

    async def _process_cache_hit(
        self,
        image: str,
        reference: ImageReference,
        keys: CacheKeySet,
        digest: str,
        manifest_restored: bool,
        recorder: EventRecorder,
    ) -> ProcessingOutcome:
        """Load a cached archive and check it against the registry."""
        loaded = await self.runtime.load_from_archive(keys.tar_path)
        if not loaded.ok:
            error = f"Failed to load image from cache: {image}"
            recorder.warning(error)
            return recorder.outcome(
                success=False,
                restored_from_cache=False,
                cache_key=keys.image_cache_key,
                digest=digest,
                platform=reference.platform,
                error=error,
            )

        metadata = await self.runtime.inspect_local(image)

        def cached() -> ProcessingOutcome:
            return recorder.outcome(
                success=True,
                restored_from_cache=True,
                cache_key=keys.image_cache_key,
                digest=digest,
                platform=reference.platform,
                image_size_bytes=metadata.size_bytes if metadata else None,
            )

        if self.skip_digest_verification:
            recorder.info(
                f"Skipped digest verification for {image}, using cached version"
            )
            return cached()

        if not manifest_restored:
            recorder.debug(f"No manifest cache for {image}")
            return cached()

        cached_manifest, remote_manifest = await asyncio.gather(
            read_manifest(keys.manifest_path),
            self.runtime.inspect_remote_manifest(image),
        )
        if (
            cached_manifest is None
            or remote_manifest is None
            or not remote_manifest.digest
        ):
            recorder.debug(f"Cannot compare manifests for {image}: missing data")
            return cached()

        if cached_manifest.digest == remote_manifest.digest:
            recorder.debug(f"Manifest match confirmed for {image}")
            return cached()

        # The refreshed image is not written back to the cache; the next run
        # sees the same mismatch again.
        recorder.info(f"Manifest mismatch detected for {image}, pulling fresh image")
        pulled = await self.runtime.pull(image, reference.platform)
        if not pulled.ok:
            recorder.warning(f"Failed to pull updated image {image}")
        return cached()
