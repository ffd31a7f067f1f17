"""Manifest digest lookup over the Docker Registry HTTP API v2."""

import asyncio
import logging
import re
import time
from typing import Dict, Mapping, Optional

import aiohttp

from ..core.types import ImageReference, ManifestInfo
from ..exceptions import InvalidImageReferenceError, RegistryError
from ..utils.digest import calculate_digest, validate_digest

logger = logging.getLogger(__name__)

DOCKER_HUB_HOST = "registry-1.docker.io"
DOCKER_HUB_ALIASES = {"docker.io", "index.docker.io", DOCKER_HUB_HOST}

MANIFEST_MEDIA_TYPES = (
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
)

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def split_registry_host(name: str) -> tuple[str, str]:
    """Split an image name into registry host and repository path.

    Args:
        name: Image name without tag (e.g., "nginx", "ghcr.io/org/app")

    Returns:
        tuple[str, str]: (registry host, repository)

    Examples:
        split_registry_host("nginx")            # ("registry-1.docker.io", "library/nginx")
        split_registry_host("localhost:5000/a") # ("localhost:5000", "a")
    """
    first, sep, rest = name.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        host, repository = first, rest
    else:
        host, repository = DOCKER_HUB_HOST, name

    if host in DOCKER_HUB_ALIASES:
        host = DOCKER_HUB_HOST
        if "/" not in repository:
            repository = f"library/{repository}"
    return host, repository


def registry_base_url(host: str) -> str:
    """Base URL for a registry host; local registries are plain HTTP."""
    hostname = host.split(":", 1)[0]
    if hostname in ("localhost", "127.0.0.1", "::1"):
        return f"http://{host}"
    return f"https://{host}"


def parse_bearer_challenge(header: str) -> Dict[str, str] | None:
    """Parse a ``WWW-Authenticate: Bearer ...`` header into its parameters."""
    scheme, _, params = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return dict(_CHALLENGE_PARAM.findall(params))


class RegistryManifestInspector:
    """Resolves manifest digests with anonymous registry v2 requests."""

    def __init__(
        self,
        timeout: int = 30,
        connector: Optional[aiohttp.TCPConnector] = None,
    ) -> None:
        """Initialize the inspector.

        Args:
            timeout: Request timeout in seconds
            connector: aiohttp connector for connection pooling
        """
        self.timeout = timeout
        self.connector = connector
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "RegistryManifestInspector":
        """Enter async context manager."""
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if not self.session or self.session.closed:
            self.session = aiohttp.ClientSession(
                connector=self.connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self.session

    async def close(self) -> None:
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()

    async def _fetch_token(self, challenge: Dict[str, str], repository: str) -> str:
        realm = challenge.get("realm")
        if not realm:
            raise RegistryError("Bearer challenge without realm")

        params = {"scope": challenge.get("scope", f"repository:{repository}:pull")}
        if "service" in challenge:
            params["service"] = challenge["service"]

        async with self._ensure_session().get(realm, params=params) as resp:
            if resp.status != 200:
                raise RegistryError(f"Token request failed with status {resp.status}")
            data = await resp.json(content_type=None)

        if not isinstance(data, dict):
            raise RegistryError("Token response is not a JSON object")
        token = data.get("token") or data.get("access_token")
        if not token:
            raise RegistryError("Token response did not contain a token")
        return token

    async def _request_manifest(
        self, method: str, url: str, repository: str
    ) -> tuple[int, Mapping[str, str], bytes]:
        """Send a manifest request, answering one bearer challenge if needed."""
        headers = {"Accept": ", ".join(MANIFEST_MEDIA_TYPES)}
        session = self._ensure_session()

        for attempt in range(2):
            async with session.request(method, url, headers=headers) as resp:
                body = await resp.read() if method == "GET" else b""
                status, resp_headers = resp.status, resp.headers.copy()

            challenge_header = resp_headers.get("WWW-Authenticate", "")
            if status == 401 and attempt == 0 and challenge_header:
                challenge = parse_bearer_challenge(challenge_header)
                if challenge is None:
                    break
                token = await self._fetch_token(challenge, repository)
                headers["Authorization"] = f"Bearer {token}"
                continue
            break

        return status, resp_headers, body

    async def resolve_digest(self, image: str) -> ManifestInfo:
        """Resolve the manifest digest of an image tag.

        Args:
            image: Image reference (e.g., "nginx:1.25", "localhost:5000/app")

        Returns:
            ManifestInfo with the digest reported by the registry

        Raises:
            RegistryError: If the registry cannot be reached or rejects the request
        """
        reference = ImageReference.parse(image)
        host, repository = split_registry_host(reference.name)
        url = f"{registry_base_url(host)}/v2/{repository}/manifests/{reference.tag}"

        try:
            status, headers, _ = await self._request_manifest("HEAD", url, repository)
            digest = headers.get("Docker-Content-Digest")
            if status == 200 and not digest:
                # Some registries omit the header on HEAD; hash the body instead
                status, headers, body = await self._request_manifest(
                    "GET", url, repository
                )
                digest = headers.get("Docker-Content-Digest") or (
                    calculate_digest(body) if status == 200 else None
                )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RegistryError(f"Failed to get manifest for {image}: {e}") from e

        if status != 200:
            raise RegistryError(
                f"Failed to get manifest for {image}: status code {status}"
            )
        if not digest or not validate_digest(digest):
            raise RegistryError(f"Invalid digest for {image}: {digest}")

        return ManifestInfo(
            digest=digest,
            raw={
                "mediaType": headers.get("Content-Type", ""),
                "digest": digest,
            },
        )

    async def inspect(self, image: str) -> ManifestInfo | None:
        """Inspect a remote manifest; failures are logged and yield None."""
        start = time.perf_counter()
        logger.info(f"Resolving manifest digest for {image} from registry")
        try:
            manifest = await self.resolve_digest(image)
        except (RegistryError, InvalidImageReferenceError) as e:
            logger.warning(str(e))
            return None
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000)
            logger.info(f"Registry lookup completed in {elapsed_ms}ms: {image}")
        return manifest
