"""Async functional entry points."""

from typing import Sequence

from .cache.keys import generate_cache_key
from .cache.store import CacheStoreGateway, DirectoryCacheStore
from .config import DEFAULT_CACHE_KEY_PREFIX
from .core.types import ContainerRuntime, ImageReference, ImageSpec, ProcessingOutcome
from .processing.batch import BatchCoordinator
from .processing.processor import ImageProcessor
from .runtime.gateway import ImageRuntimeGateway


async def cache_images(
    images: Sequence[str | ImageSpec],
    cache_dir: str,
    cache_key_prefix: str = DEFAULT_CACHE_KEY_PREFIX,
    skip_digest_verification: bool = False,
    force_refresh: bool = False,
    container_runtime: str = "docker",
) -> list[ProcessingOutcome]:
    """이미지 목록을 캐시에서 복원하거나 pull 후 캐시에 저장합니다.

    모든 이미지를 동시에 처리하며, 한 이미지의 실패가 다른 이미지에 영향을
    주지 않습니다.

    Args:
        images: 이미지 목록 (예: ["nginx:alpine", ImageSpec("redis:7", "linux/arm64")])
        cache_dir: 캐시 엔트리를 저장할 디렉토리 (예: "/var/cache/images")
        cache_key_prefix: 캐시 키 접두사 (기본값: "docker-compose-image")
        skip_digest_verification: 캐시된 이미지의 digest 검증 생략 여부
        force_refresh: 기존 캐시를 무시하고 항상 pull 할지 여부
        container_runtime: 컨테이너 런타임 ("docker" 또는 "podman")

    Returns:
        list[ProcessingOutcome]: 입력 순서와 동일한 이미지별 처리 결과

    Examples:
        # 두 이미지를 캐시
        outcomes = await cache_images(["nginx:alpine", "redis:7"], "/tmp/image-cache")
        for outcome in outcomes:
            print(f"{outcome.image_name}: {outcome.status.value}")
    """
    specs = [ImageSpec(image=i) if isinstance(i, str) else i for i in images]
    processor = ImageProcessor(
        ImageRuntimeGateway(ContainerRuntime.parse(container_runtime)),
        CacheStoreGateway(DirectoryCacheStore(cache_dir)),
        cache_key_prefix,
        skip_digest_verification=skip_digest_verification,
        force_refresh=force_refresh,
    )
    return await BatchCoordinator(processor).run(specs)


def cache_key_for(
    image: str,
    digest: str | None,
    platform: str | None = None,
    cache_key_prefix: str = DEFAULT_CACHE_KEY_PREFIX,
) -> str:
    """이미지와 digest로부터 캐시 키를 계산합니다.

    Args:
        image: 이미지 이름 (예: "nginx:alpine", "localhost:5000/app:1.0")
        digest: 매니페스트 digest (예: "sha256:abc123..."), 없으면 None
        platform: 플랫폼 문자열 (예: "linux/amd64"), 없으면 호스트 플랫폼 사용
        cache_key_prefix: 캐시 키 접두사

    Returns:
        str: 캐시 키 (예: "docker-compose-image-nginx-alpine-linux-amd64-none-abc123def456")

    Raises:
        InvalidImageReferenceError: 이미지 이름이 비어있는 경우
    """
    reference = ImageReference.parse(image, platform)
    return generate_cache_key(
        cache_key_prefix, reference.name, reference.tag, platform, digest
    )
