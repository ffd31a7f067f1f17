"""Test configuration and fixtures."""

import os
import shutil

import pytest

from compose_image_cache.cache.store import CacheStoreGateway, DirectoryCacheStore
from compose_image_cache.processing.processor import ImageProcessor
from tests.helpers import CACHE_KEY_PREFIX, RecordingCacheStore


@pytest.fixture(autouse=True)
def fixed_host_platform(monkeypatch):
    """Pin the host platform so default keys are stable across machines."""
    monkeypatch.setattr(
        "compose_image_cache.utils.platform.host_platform", lambda: ("linux", "amd64")
    )


@pytest.fixture
def cache_store(tmp_path):
    """Directory cache store wrapped to record calls."""
    return RecordingCacheStore(DirectoryCacheStore(tmp_path / "cache"))


@pytest.fixture
def make_processor(tmp_path, cache_store):
    """Factory for processors sharing one cache store.

    Each processor gets its own scratch directory, as separate runs would.
    """
    counter = iter(range(1000))

    def factory(runtime, **options):
        scratch = tmp_path / f"run-{next(counter)}"
        scratch.mkdir()
        return ImageProcessor(
            runtime,
            CacheStoreGateway(options.pop("store", cache_store)),
            options.pop("cache_key_prefix", CACHE_KEY_PREFIX),
            temp_dir=str(scratch),
            **options,
        )

    return factory


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring docker"
    )
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless a container runtime is available."""
    skip_integration = pytest.mark.skip(reason="Docker not available")
    docker_available = (
        os.getenv("DOCKER_AVAILABLE", "false").lower() == "true"
        and shutil.which("docker") is not None
    )

    for item in items:
        if "integration" in item.keywords and not docker_available:
            item.add_marker(skip_integration)
