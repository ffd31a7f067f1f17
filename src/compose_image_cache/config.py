"""Configuration loaded from action inputs (``INPUT_*`` environment variables)."""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping

from .core.types import ContainerRuntime
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY_PREFIX = "docker-compose-image"
DEFAULT_CACHE_DIR = str(Path.home() / ".cache" / "compose-image-cache")

_TRUE_VALUES = ("true", "True", "TRUE")
_FALSE_VALUES = ("false", "False", "FALSE")


class ManifestSource(str, Enum):
    """Where remote manifest digests are looked up."""

    BUILDX = "buildx"
    REGISTRY = "registry"


@dataclass(frozen=True)
class ActionConfig:
    """Settings for one cache run."""

    compose_files: tuple[str, ...] = ()
    exclude_images: tuple[str, ...] = ()
    additional_images: tuple[str, ...] = ()
    cache_key_prefix: str = DEFAULT_CACHE_KEY_PREFIX
    skip_digest_verification: bool = False
    force_refresh: bool = False
    container_runtime: ContainerRuntime = ContainerRuntime.DOCKER
    manifest_source: ManifestSource = ManifestSource.BUILDX
    cache_dir: str = DEFAULT_CACHE_DIR
    temp_dir: str | None = field(default=None)


def _input_env_name(name: str) -> str:
    return f"INPUT_{name.replace(' ', '_').upper()}"


def get_input(environ: Mapping[str, str], name: str) -> str:
    """Read an action input, trimmed; missing inputs are ''."""
    return environ.get(_input_env_name(name), "").strip()


def get_multiline_input(environ: Mapping[str, str], name: str) -> tuple[str, ...]:
    """Read a newline-separated input, dropping blank lines."""
    value = get_input(environ, name)
    return tuple(line.strip() for line in value.splitlines() if line.strip())


def get_boolean_input(
    environ: Mapping[str, str], name: str, default: bool = False
) -> bool:
    """Read a boolean input (true/True/TRUE or false/False/FALSE).

    Raises:
        ConfigurationError: If the value is not a recognised boolean
    """
    value = get_input(environ, name)
    if not value:
        return default
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"Input does not meet YAML 1.2 \"Core Schema\" specification: {name}\n"
        "Support boolean input list: `true | True | TRUE | false | False | FALSE`"
    )


def get_skip_digest_verification(environ: Mapping[str, str]) -> bool:
    """Resolve skip-digest-verification, honouring the deprecated alias."""
    if get_input(environ, "skip-digest-verification"):
        return get_boolean_input(environ, "skip-digest-verification")

    if get_input(environ, "skip-latest-check"):
        logger.warning(
            "The 'skip-latest-check' input is deprecated and will be removed in a "
            "future major version. Please use 'skip-digest-verification' instead."
        )
        return get_boolean_input(environ, "skip-latest-check")

    return False


def _parse_manifest_source(value: str) -> ManifestSource:
    if not value:
        return ManifestSource.BUILDX
    try:
        return ManifestSource(value)
    except ValueError:
        raise ConfigurationError(
            f"Unsupported manifest source '{value}'. Use 'buildx' or 'registry'."
        ) from None


def load_config(environ: Mapping[str, str] | None = None) -> ActionConfig:
    """Load the action configuration from environment variables.

    Args:
        environ: Environment mapping (default: os.environ)

    Returns:
        ActionConfig

    Raises:
        ConfigurationError: If an input has an invalid value
    """
    env = os.environ if environ is None else environ
    return ActionConfig(
        compose_files=get_multiline_input(env, "compose-files"),
        exclude_images=get_multiline_input(env, "exclude-images"),
        additional_images=get_multiline_input(env, "additional-images"),
        cache_key_prefix=get_input(env, "cache-key-prefix") or DEFAULT_CACHE_KEY_PREFIX,
        skip_digest_verification=get_skip_digest_verification(env),
        force_refresh=get_boolean_input(env, "force-refresh"),
        container_runtime=ContainerRuntime.parse(get_input(env, "container-runtime")),
        manifest_source=_parse_manifest_source(get_input(env, "manifest-source")),
        cache_dir=get_input(env, "cache-dir") or DEFAULT_CACHE_DIR,
        temp_dir=env.get("RUNNER_TEMP") or None,
    )
