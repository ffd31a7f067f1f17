"""Core data types for image cache processing."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..exceptions import InvalidImageReferenceError

logger = logging.getLogger(__name__)

DEFAULT_TAG = "latest"


class ContainerRuntime(str, Enum):
    """Supported container runtimes."""

    DOCKER = "docker"
    PODMAN = "podman"

    @classmethod
    def parse(cls, value: str | None) -> "ContainerRuntime":
        """Parse a runtime name, falling back to docker for unknown values.

        Args:
            value: Runtime name (e.g., "docker", "podman")

        Returns:
            Matching runtime, or DOCKER if the value is empty or unsupported
        """
        if not value:
            return cls.DOCKER
        try:
            return cls(value)
        except ValueError:
            logger.warning(
                f"Unsupported container runtime '{value}' specified. Defaulting to 'docker'."
            )
            return cls.DOCKER


@dataclass(frozen=True)
class ImageSpec:
    """An image declared for caching, as discovered from compose files."""

    image: str
    platform: str | None = None


@dataclass(frozen=True)
class ImageReference:
    """Image name split into repository name and tag."""

    name: str
    tag: str = DEFAULT_TAG
    platform: str | None = None

    @classmethod
    def parse(cls, image: str, platform: str | None = None) -> "ImageReference":
        """Parse an ``image[:tag]`` string.

        Splits on the last ':' so registry ports are kept in the name
        (``localhost:5000/app:1.0`` -> ``localhost:5000/app``, ``1.0``).

        Args:
            image: Image string as written in the compose file
            platform: Optional platform string (e.g., "linux/arm64/v8")

        Returns:
            Parsed image reference

        Raises:
            InvalidImageReferenceError: If the name portion is empty
        """
        name, tag = image, DEFAULT_TAG
        if ":" in image:
            head, tail = image.rsplit(":", 1)
            # "host:5000/app" has no tag, the colon belongs to the registry port
            if "/" not in tail:
                name, tag = head, tail or DEFAULT_TAG

        if not name:
            raise InvalidImageReferenceError(f"Invalid image name format: {image}")

        return cls(name=name, tag=tag, platform=platform)

    def __str__(self) -> str:
        return f"{self.name}:{self.tag}"


@dataclass(frozen=True)
class ManifestInfo:
    """Remote manifest information for an image."""

    digest: str | None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_json(cls, data: Any) -> "ManifestInfo":
        """Build from decoded manifest JSON."""
        if not isinstance(data, dict):
            return cls(digest=None)
        digest = data.get("digest")
        return cls(digest=digest if isinstance(digest, str) and digest else None, raw=data)

    def to_json(self) -> dict[str, Any]:
        """Serialize for the manifest snapshot file."""
        data = dict(self.raw)
        if self.digest:
            data["digest"] = self.digest
        return data


@dataclass(frozen=True)
class LocalImageMetadata:
    """Local image information from the runtime's inspect command."""

    size_bytes: int


@dataclass(frozen=True)
class CacheKeySet:
    """Cache keys and scratch file paths for one image identity."""

    image_cache_key: str
    manifest_cache_key: str
    fallback_key_prefix: str
    tar_path: str
    manifest_path: str


@dataclass(frozen=True)
class CommandResult:
    """Result of an external command invocation."""

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class OperationResult:
    """Success or failure of an image runtime operation."""

    ok: bool
    reason: str | None = None

    @classmethod
    def success(cls) -> "OperationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "OperationResult":
        return cls(ok=False, reason=reason)


@dataclass(frozen=True)
class CacheRestoreResult:
    """Result of a cache restore attempt."""

    restored: bool
    matched_key: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class CacheSaveResult:
    """Result of a cache save attempt."""

    saved: bool
    key: str
    reason: str | None = None


@dataclass(frozen=True)
class ProcessingEvent:
    """A single decision or warning recorded while processing an image."""

    level: int
    image: str
    message: str

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


class ImageStatus(str, Enum):
    """Reported status of a processed image."""

    CACHED = "Cached"
    PULLED = "Pulled"
    ERROR = "Error"


@dataclass(frozen=True)
class ProcessingOutcome:
    """Result of processing a single image."""

    success: bool
    restored_from_cache: bool
    image_name: str
    cache_key: str = ""
    digest: str | None = None
    platform: str | None = None
    error: str | None = None
    image_size_bytes: int | None = None
    events: tuple[ProcessingEvent, ...] = ()
    processing_time_ms: float | None = None

    @property
    def status(self) -> ImageStatus:
        if not self.success:
            return ImageStatus.ERROR
        if self.restored_from_cache:
            return ImageStatus.CACHED
        return ImageStatus.PULLED
