"""Image runtime operations: pull, inspect, save and load.

Every operation shells out to the container runtime binary and reports an
outcome instead of raising. Nothing is retried here.
"""

import json
import logging
from typing import Awaitable, Callable, Protocol, Sequence

from ..core.types import (
    CommandResult,
    ContainerRuntime,
    LocalImageMetadata,
    ManifestInfo,
    OperationResult,
)
from ..exceptions import CommandExecutionError
from .process import run_command

logger = logging.getLogger(__name__)

CommandRunner = Callable[[Sequence[str]], Awaitable[CommandResult]]


class ManifestInspector(Protocol):
    """Looks up the remote manifest of an image."""

    async def inspect(self, image: str) -> ManifestInfo | None: ...


def _platform_suffix(platform: str | None) -> str:
    return f" for platform {platform}" if platform else ""


def _parse_json(output: str, what: str, image: str) -> object | None:
    try:
        return json.loads(output.strip())
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse {what} JSON for {image}: {e}")
        return None


class BuildxManifestInspector:
    """Remote manifest lookup with ``docker buildx imagetools inspect``.

    buildx ships with docker on hosted CI runners, so this is used even when
    podman is the selected runtime.
    """

    def __init__(self, runner: CommandRunner = run_command) -> None:
        self.runner = runner

    async def inspect(self, image: str) -> ManifestInfo | None:
        cmd = [
            "docker",
            "buildx",
            "imagetools",
            "inspect",
            "--format",
            "{{json .Manifest}}",
            image,
        ]
        try:
            result = await self.runner(cmd)
        except CommandExecutionError as e:
            logger.warning(f"Error inspecting manifest for {image}: {e}")
            return None

        if not result.ok:
            logger.warning(f"Failed to inspect manifest for {image}: {result.stderr}")
            return None

        data = _parse_json(result.stdout, "manifest", image)
        if data is None:
            return None
        return ManifestInfo.from_json(data)


class ImageRuntimeGateway:
    """Typed facade over the container runtime CLI."""

    def __init__(
        self,
        runtime: ContainerRuntime = ContainerRuntime.DOCKER,
        manifest_inspector: ManifestInspector | None = None,
        runner: CommandRunner = run_command,
    ) -> None:
        """Initialize the gateway.

        Args:
            runtime: Container runtime binary to invoke
            manifest_inspector: Remote manifest lookup (default: buildx)
            runner: Command runner, replaceable in tests
        """
        self.runtime = runtime
        self.runner = runner
        self.manifest_inspector = manifest_inspector or BuildxManifestInspector(runner)

    async def _run(self, cmd: list[str], failure: str) -> OperationResult:
        try:
            result = await self.runner(cmd)
        except CommandExecutionError as e:
            logger.warning(f"{failure}: {e}")
            return OperationResult.failure(f"{failure}: {e}")

        if not result.ok:
            logger.warning(f"{failure}: {result.stderr.strip()}")
            return OperationResult.failure(f"{failure}: {result.stderr.strip()}")
        return OperationResult.success()

    async def pull(self, image: str, platform: str | None = None) -> OperationResult:
        """Pull an image, optionally for a specific platform."""
        cmd = [self.runtime.value, "pull", image]
        if platform:
            cmd.extend(["--platform", platform])
            logger.info(f"Pulling image {image} for platform {platform}")
        return await self._run(
            cmd, f"Failed to pull image {image}{_platform_suffix(platform)}"
        )

    async def inspect_remote_manifest(self, image: str) -> ManifestInfo | None:
        """Look up the registry manifest; None if unreachable or unparsable."""
        return await self.manifest_inspector.inspect(image)

    async def inspect_local(self, image: str) -> LocalImageMetadata | None:
        """Inspect a local image for its size.

        Note: images loaded from an archive may lack RepoDigests and other
        registry fields; only Size is relied on.
        """
        cmd = [self.runtime.value, "inspect", "--format", "{{json .}}", image]
        try:
            result = await self.runner(cmd)
        except CommandExecutionError as e:
            logger.warning(f"Error inspecting image {image}: {e}")
            return None

        if not result.ok:
            logger.warning(f"Failed to inspect image {image}: {result.stderr}")
            return None

        data = _parse_json(result.stdout, "inspect", image)
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict) or not isinstance(data.get("Size"), int):
            logger.warning(f"No image size in inspect output for {image}")
            return None
        return LocalImageMetadata(size_bytes=data["Size"])

    async def save_to_archive(self, image: str, path: str) -> OperationResult:
        """Save an image to a tar archive."""
        cmd = [self.runtime.value, "save", "-o", path, image]
        if self.runtime is ContainerRuntime.PODMAN:
            # oci-archive keeps zstd-compressed layers intact
            cmd.extend(["--format", "oci-archive"])
        return await self._run(cmd, f"Failed to save image {image} to {path}")

    async def load_from_archive(self, path: str) -> OperationResult:
        """Load an image from a tar archive."""
        cmd = [self.runtime.value, "load", "-i", path]
        return await self._run(cmd, f"Failed to load image from {path}")
