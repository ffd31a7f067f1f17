"""Command line entry point."""

import asyncio
import logging
import sys
import time
from typing import Mapping

from .cache.store import CacheStoreGateway, DirectoryCacheStore
from .compose import get_compose_file_paths, get_compose_services
from .config import ActionConfig, ManifestSource, load_config
from .core.types import ImageSpec
from .exceptions import ConfigurationError
from .processing.batch import BatchCoordinator, BatchSummary
from .processing.processor import ImageProcessor
from .report import build_image_list, log_summary, set_outputs, write_step_summary
from .runtime.gateway import ImageRuntimeGateway
from .runtime.registry import RegistryManifestInspector

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def collect_images(config: ActionConfig) -> tuple[list[str], list[ImageSpec]]:
    """Compose files found and the images to process."""
    compose_files = get_compose_file_paths(config.compose_files)
    specs = get_compose_services(compose_files, config.exclude_images)
    specs.extend(ImageSpec(image=image) for image in config.additional_images)
    return compose_files, specs


async def run_with_config(config: ActionConfig) -> int:
    """Run the cache for a loaded configuration; returns the exit code."""
    start = time.perf_counter()

    compose_files, specs = collect_images(config)
    if not specs:
        logger.info(
            "No Docker services found in compose files or all services were excluded"
        )
        await set_outputs(False, [])
        return 0

    logger.info(f"Found {len(specs)} images to cache in {len(compose_files)} compose files")
    if config.force_refresh:
        logger.info("Force refresh enabled - ignoring existing cache")

    inspector = (
        RegistryManifestInspector()
        if config.manifest_source is ManifestSource.REGISTRY
        else None
    )
    try:
        runtime = ImageRuntimeGateway(config.container_runtime, manifest_inspector=inspector)
        processor = ImageProcessor(
            runtime,
            CacheStoreGateway(DirectoryCacheStore(config.cache_dir)),
            config.cache_key_prefix,
            skip_digest_verification=config.skip_digest_verification,
            force_refresh=config.force_refresh,
            temp_dir=config.temp_dir,
        )
        outcomes = await BatchCoordinator(processor).run(specs)
    finally:
        if inspector is not None:
            await inspector.close()

    summary = BatchSummary.from_outcomes(outcomes, (time.perf_counter() - start) * 1000)
    await set_outputs(summary.all_from_cache, build_image_list(outcomes))
    await write_step_summary(
        outcomes, summary, compose_files, config.skip_digest_verification
    )
    log_summary(summary, outcomes)
    return 0


async def run(environ: Mapping[str, str] | None = None) -> int:
    """Load configuration from the environment and run.

    Returns:
        Process exit code; 1 only for configuration errors
    """
    try:
        config = load_config(environ)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1
    return await run_with_config(config)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
