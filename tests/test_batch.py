"""Tests for concurrent batch processing."""

import asyncio

import pytest

from compose_image_cache.core.types import ImageSpec, ProcessingOutcome
from compose_image_cache.processing.batch import BatchCoordinator, BatchSummary
from tests.helpers import DIGEST_A, DIGEST_B, FakeRuntime


def outcome(image, success=True, restored=False, size=None):
    return ProcessingOutcome(
        success=success,
        restored_from_cache=restored,
        image_name=image,
        image_size_bytes=size,
    )


class TestBatchCoordinator:
    """Fan-out over all images."""

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_siblings(self, make_processor):
        specs = [ImageSpec("nginx:1.25"), ImageSpec("broken:1"), ImageSpec("redis:7")]
        runtime = FakeRuntime(
            {"nginx:1.25": DIGEST_A, "broken:1": DIGEST_B, "redis:7": DIGEST_B},
            pull_fails=["broken:1"],
        )
        outcomes = await BatchCoordinator(make_processor(runtime)).run(specs)

        assert [o.image_name for o in outcomes] == ["nginx:1.25", "broken:1", "redis:7"]
        assert [o.success for o in outcomes] == [True, False, True]
        assert runtime.count("pull") == 3

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self, make_processor):
        specs = [ImageSpec("slow:1"), ImageSpec("fast:1")]
        runtime = FakeRuntime(
            {"slow:1": DIGEST_A, "fast:1": DIGEST_B}, delays={"slow:1": 0.05}
        )
        outcomes = await BatchCoordinator(make_processor(runtime)).run(specs)

        assert [o.image_name for o in outcomes] == ["slow:1", "fast:1"]

    @pytest.mark.asyncio
    async def test_images_are_processed_concurrently(self, make_processor):
        images = [f"app{i}:1" for i in range(5)]
        runtime = FakeRuntime(
            {image: DIGEST_A for image in images},
            delays={image: 0.2 for image in images},
        )
        coordinator = BatchCoordinator(make_processor(runtime))

        loop = asyncio.get_event_loop()
        start = loop.time()
        outcomes = await coordinator.run([ImageSpec(image) for image in images])
        elapsed = loop.time() - start

        assert all(o.success for o in outcomes)
        assert elapsed < 0.8

    @pytest.mark.asyncio
    async def test_outcomes_are_timed(self, make_processor):
        runtime = FakeRuntime({"nginx:1.25": DIGEST_A})
        outcomes = await BatchCoordinator(make_processor(runtime)).run(
            [ImageSpec("nginx:1.25")]
        )
        assert outcomes[0].processing_time_ms is not None
        assert outcomes[0].processing_time_ms >= 0

    @pytest.mark.asyncio
    async def test_processor_exception_becomes_failure(self):
        class FailingProcessor:
            async def process(self, spec):
                if spec.image == "bad:1":
                    raise RuntimeError("unexpected")
                return outcome(spec.image)

        outcomes = await BatchCoordinator(FailingProcessor()).run(
            [ImageSpec("bad:1"), ImageSpec("good:1")]
        )
        assert [o.success for o in outcomes] == [False, True]
        assert outcomes[0].error == "unexpected"

    @pytest.mark.asyncio
    async def test_empty_batch(self, make_processor):
        outcomes = await BatchCoordinator(make_processor(FakeRuntime())).run([])
        assert outcomes == []


class TestBatchSummary:
    """Aggregate flags."""

    def test_all_from_cache(self):
        summary = BatchSummary.from_outcomes(
            [outcome("a", restored=True, size=10), outcome("b", restored=True, size=5)]
        )
        assert summary.all_from_cache is True
        assert summary.cached == 2
        assert summary.total_size_bytes == 15

    def test_single_pull_clears_all_from_cache(self):
        summary = BatchSummary.from_outcomes(
            [outcome("a", restored=True), outcome("b")]
        )
        assert summary.all_from_cache is False
        assert summary.pulled == 1

    def test_failure_is_counted(self):
        summary = BatchSummary.from_outcomes(
            [outcome("a", restored=True), outcome("b", success=False)]
        )
        assert summary.all_from_cache is False
        assert summary.failed == 1
        assert summary.pulled == 0

    def test_empty_is_not_all_from_cache(self):
        assert BatchSummary.from_outcomes([]).all_from_cache is False
