"""Content digest helpers."""

import hashlib
import re

# Regex pattern for valid digest format (algorithm:hex)
DIGEST_PATTERN = re.compile(r"^(?P<algorithm>[a-z0-9]+):(?P<hex>[a-f0-9]+)$")

SUPPORTED_ALGORITHMS = ("sha256", "sha512")


def calculate_digest(data: bytes | bytearray, algorithm: str = "sha256") -> str:
    """Calculate the content digest of raw bytes.

    Args:
        data: Bytes to hash (e.g., a manifest body)
        algorithm: Hash algorithm (default: sha256)

    Returns:
        Digest string in format "algorithm:hex"

    Raises:
        ValueError: If algorithm is not supported or data is not bytes-like
    """
    if not isinstance(data, (bytes, bytearray)):
        raise ValueError("Data must be bytes or bytearray")

    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    return f"{algorithm}:{hashlib.new(algorithm, data).hexdigest()}"


def validate_digest(digest: str) -> bool:
    """Check that a digest looks like "sha256:<hex>"."""
    if not isinstance(digest, str):
        return False

    match = DIGEST_PATTERN.match(digest)
    return bool(match) and match.group("algorithm") in SUPPORTED_ALGORITHMS


def split_digest(digest: str) -> tuple[str | None, str]:
    """Split a digest into its algorithm label and hex part.

    A digest without a label (plain hex) yields ``(None, digest)``.
    """
    if ":" not in digest:
        return None, digest
    algorithm, hex_part = digest.split(":", 1)
    return algorithm, hex_part
