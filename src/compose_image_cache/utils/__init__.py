"""Utility functions for compose image cache."""

from .digest import calculate_digest, split_digest, validate_digest
from .platform import host_platform, parse_platform

__all__ = [
    "calculate_digest",
    "split_digest",
    "validate_digest",
    "host_platform",
    "parse_platform",
]
