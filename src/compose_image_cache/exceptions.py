"""Custom exceptions for compose image cache."""


class ImageCacheError(Exception):
    """Base exception for all image cache errors."""

    pass


class InvalidImageReferenceError(ImageCacheError):
    """Raised when an image reference cannot be parsed."""

    pass


class CommandExecutionError(ImageCacheError):
    """Raised when an external command cannot be started."""

    pass


class RegistryError(ImageCacheError):
    """Raised when a registry request fails."""

    pass


class CacheStoreError(ImageCacheError):
    """Raised when the cache store cannot be read or written."""

    pass


class ConfigurationError(ImageCacheError):
    """Raised when configuration values are invalid."""

    pass
