"""Compose Image Cache - digest-verified caching of container images."""

__version__ = "0.1.0"

from .api import cache_images, cache_key_for
from .core.types import (
    ContainerRuntime,
    ImageReference,
    ImageSpec,
    ImageStatus,
    ProcessingEvent,
    ProcessingOutcome,
)
from .exceptions import (
    CacheStoreError,
    CommandExecutionError,
    ConfigurationError,
    ImageCacheError,
    InvalidImageReferenceError,
    RegistryError,
)

__all__ = [
    "cache_images",
    "cache_key_for",
    "ContainerRuntime",
    "ImageReference",
    "ImageSpec",
    "ImageStatus",
    "ProcessingEvent",
    "ProcessingOutcome",
    "ImageCacheError",
    "InvalidImageReferenceError",
    "CommandExecutionError",
    "RegistryError",
    "CacheStoreError",
    "ConfigurationError",
]
