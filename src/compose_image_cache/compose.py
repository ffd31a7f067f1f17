"""Docker Compose file discovery and service extraction."""

import logging
import os
import re
from typing import Sequence

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .core.types import ImageSpec

logger = logging.getLogger(__name__)

DEFAULT_COMPOSE_FILE_NAMES = (
    "compose.yaml",
    "compose.yml",
    "docker-compose.yaml",
    "docker-compose.yml",
)


def get_yaml_instance() -> YAML:
    yaml = YAML(typ="safe", pure=True)
    yaml.allow_duplicate_keys = True
    return yaml


def pattern_to_regex(pattern: str) -> re.Pattern[str]:
    """Convert a glob pattern with `*` and `?` wildcards to a regex."""
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile(f"^{''.join(parts)}$")


def matches_exclude_pattern(image: str, patterns: Sequence[str]) -> bool:
    """Check whether an image matches any exclusion pattern.

    Args:
        image: Image name (e.g., "nginx:latest")
        patterns: Exact names or globs (e.g., ["nginx:*", "*:latest"])

    Returns:
        True if the image should be excluded
    """
    for pattern in patterns:
        if "*" not in pattern and "?" not in pattern:
            if image == pattern:
                return True
        elif pattern_to_regex(pattern).match(image):
            return True
    return False


def get_compose_file_paths(candidates: Sequence[str]) -> list[str]:
    """Existing compose files among the candidates, or the default names."""
    paths = candidates if candidates else DEFAULT_COMPOSE_FILE_NAMES
    return [path for path in paths if os.path.isfile(path)]


def _load_services(path: str) -> list[dict]:
    try:
        with open(path, encoding="utf-8") as f:
            definition = get_yaml_instance().load(f)
    except (OSError, YAMLError) as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return []

    if not definition:
        logger.debug(f"Empty or invalid YAML file: {path}")
        return []
    if not isinstance(definition, dict) or not definition.get("services"):
        logger.debug(f"No services section found in {path}")
        return []

    services = definition["services"]
    if not isinstance(services, dict):
        logger.warning(f"Services section in {path} is not a mapping")
        return []
    return [service for service in services.values() if isinstance(service, dict)]


def get_compose_services(
    compose_file_paths: Sequence[str], exclude_patterns: Sequence[str] = ()
) -> list[ImageSpec]:
    """Extract image services from compose files.

    Services without an image or matching an exclusion pattern are dropped,
    and duplicates by (image, platform) are removed keeping the first.

    Args:
        compose_file_paths: Compose files to read, in order
        exclude_patterns: Image exclusion patterns

    Returns:
        list[ImageSpec]: Unique images in declaration order
    """
    seen: set[tuple[str, str]] = set()
    specs: list[ImageSpec] = []

    for path in compose_file_paths:
        for service in _load_services(path):
            image = service.get("image")
            if not isinstance(image, str) or not image:
                continue
            if matches_exclude_pattern(image, exclude_patterns):
                continue

            platform = service.get("platform")
            platform = platform if isinstance(platform, str) and platform else None
            identity = (image, platform or "")
            if identity in seen:
                continue
            seen.add(identity)
            specs.append(ImageSpec(image=image, platform=platform))

    return specs
