"""Cache key and scratch path generation.

Keys have the form::

    {prefix}-{name}-{tag}-{os}-{arch}-{variant}-{digest12}

where ``digest12`` is the first 12 hex characters of the image digest (or
``none``). Everything here is pure; paths are computed, never touched.
"""

import os
import tempfile
from pathlib import Path

from ..core.types import CacheKeySet, ImageReference
from ..utils.digest import split_digest
from ..utils.platform import parse_platform

DIGEST_PREFIX_LENGTH = 12
NO_DIGEST = "none"
MANIFEST_KEY_SUFFIX = "manifest"

_SAFE_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789."
)
ESCAPE_CHAR = "_"


def get_temp_directory() -> str:
    """Directory for scratch archives: $RUNNER_TEMP or the system temp dir."""
    return os.environ.get("RUNNER_TEMP") or tempfile.gettempdir()


def sanitize_name(value: str) -> str:
    """Encode a key segment so it is file-name safe and contains no '-'.

    Letters, digits and '.' are kept. Every other character is written as
    '_' followed by the two hex digits of each of its UTF-8 bytes, so
    ``org/app`` becomes ``org_2fapp`` and ``org-app`` becomes ``org_2dapp``.
    The encoding is reversible, so distinct values never share a segment,
    and '-' only ever appears as the separator between segments.

    Examples:
        sanitize_name("ghcr.io/org/app")     # "ghcr.io_2forg_2fapp"
        sanitize_name("7-alpine")            # "7_2dalpine"
    """
    parts = []
    for char in value:
        if char in _SAFE_CHARS:
            parts.append(char)
        else:
            parts.extend(f"{ESCAPE_CHAR}{byte:02x}" for byte in char.encode("utf-8"))
    return "".join(parts)


def extract_digest_prefix(digest: str | None) -> str:
    """Short digest segment for keys, without the "sha256:" label.

    Args:
        digest: Full digest (e.g., "sha256:abc123...") or None

    Returns:
        First 12 hex characters, or "none" if no digest is available
    """
    if not digest:
        return NO_DIGEST
    _, hex_part = split_digest(digest)
    return hex_part[:DIGEST_PREFIX_LENGTH] or NO_DIGEST


def _identity_segments(
    image_name: str, image_tag: str, platform: str | None
) -> list[str]:
    os_name, arch, variant = parse_platform(platform)
    return [
        sanitize_name(image_name),
        sanitize_name(image_tag),
        sanitize_name(os_name),
        sanitize_name(arch),
        sanitize_name(variant),
    ]


def generate_cache_key(
    cache_key_prefix: str,
    image_name: str,
    image_tag: str,
    platform: str | None,
    digest: str | None,
) -> str:
    """Generate the cache key for an image archive.

    The digest is part of the key, so a tag that moves to a new image
    (e.g., ``latest``) gets a fresh cache entry instead of a stale one.
    """
    segments = _identity_segments(image_name, image_tag, platform)
    return "-".join([cache_key_prefix, *segments, extract_digest_prefix(digest)])


def generate_cache_key_prefix(
    cache_key_prefix: str, image_name: str, image_tag: str, platform: str | None
) -> str:
    """Generate the digest-less key prefix used as a fallback restore key.

    The trailing '-' keeps the prefix from matching a longer variant or
    tag that merely starts with the same characters.
    """
    segments = _identity_segments(image_name, image_tag, platform)
    return "-".join([cache_key_prefix, *segments]) + "-"


def generate_manifest_cache_key(
    cache_key_prefix: str,
    image_name: str,
    image_tag: str,
    platform: str | None,
    digest: str | None,
) -> str:
    """Cache key for the manifest snapshot stored next to an archive."""
    image_key = generate_cache_key(
        cache_key_prefix, image_name, image_tag, platform, digest
    )
    return f"{image_key}-{MANIFEST_KEY_SUFFIX}"


def _file_stem(
    image_name: str, image_tag: str, platform: str | None, digest: str | None
) -> str:
    segments = _identity_segments(image_name, image_tag, platform)
    return "-".join([*segments, extract_digest_prefix(digest)])


def generate_tar_path(
    image_name: str,
    image_tag: str,
    platform: str | None,
    digest: str | None,
    temp_dir: str | None = None,
) -> str:
    """Path of the scratch archive for an image."""
    base = Path(temp_dir or get_temp_directory())
    return str(base / f"{_file_stem(image_name, image_tag, platform, digest)}.tar")


def generate_manifest_path(
    image_name: str,
    image_tag: str,
    platform: str | None,
    digest: str | None,
    temp_dir: str | None = None,
) -> str:
    """Path of the scratch manifest snapshot for an image."""
    base = Path(temp_dir or get_temp_directory())
    stem = _file_stem(image_name, image_tag, platform, digest)
    return str(base / f"{stem}-{MANIFEST_KEY_SUFFIX}.json")


def derive_key_set(
    cache_key_prefix: str,
    reference: ImageReference,
    digest: str | None,
    temp_dir: str | None = None,
) -> CacheKeySet:
    """Derive every key and path for one image identity.

    Args:
        cache_key_prefix: Prefix for all cache keys
        reference: Parsed image reference (name, tag, platform)
        digest: Resolved manifest digest, or None
        temp_dir: Directory for scratch files (default: get_temp_directory())

    Returns:
        CacheKeySet with keys and paths that correspond 1:1
    """
    name, tag, platform = reference.name, reference.tag, reference.platform
    return CacheKeySet(
        image_cache_key=generate_cache_key(
            cache_key_prefix, name, tag, platform, digest
        ),
        manifest_cache_key=generate_manifest_cache_key(
            cache_key_prefix, name, tag, platform, digest
        ),
        fallback_key_prefix=generate_cache_key_prefix(
            cache_key_prefix, name, tag, platform
        ),
        tar_path=generate_tar_path(name, tag, platform, digest, temp_dir),
        manifest_path=generate_manifest_path(name, tag, platform, digest, temp_dir),
    )
