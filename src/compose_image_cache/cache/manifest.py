"""Manifest snapshot files stored alongside cached archives."""

import json
import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from ..core.types import ManifestInfo

logger = logging.getLogger(__name__)


async def write_manifest(manifest: ManifestInfo, manifest_path: str) -> bool:
    """Write a manifest snapshot as JSON.

    Args:
        manifest: Manifest to persist
        manifest_path: Destination file path

    Returns:
        True if the file was written
    """
    try:
        await aiofiles.os.makedirs(str(Path(manifest_path).parent), exist_ok=True)
        async with aiofiles.open(manifest_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(manifest.to_json()))
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"Failed to write manifest to {manifest_path}: {e}")
        return False


async def read_manifest(manifest_path: str) -> ManifestInfo | None:
    """Read a manifest snapshot written by write_manifest.

    Returns:
        ManifestInfo, or None if the file is missing or not valid JSON
    """
    try:
        async with aiofiles.open(manifest_path, "r", encoding="utf-8") as f:
            content = await f.read()
        return ManifestInfo.from_json(json.loads(content))
    except FileNotFoundError:
        logger.debug(f"Manifest file not found: {manifest_path}")
        return None
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to read manifest from {manifest_path}: {e}")
        return None
