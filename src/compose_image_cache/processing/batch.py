"""Concurrent processing of all declared images."""

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Sequence

from ..core.types import ImageSpec, ProcessingOutcome
from .processor import ImageProcessor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchSummary:
    """Aggregate counts for one batch run."""

    total: int
    cached: int
    pulled: int
    failed: int
    total_size_bytes: int
    execution_time_ms: float
    all_from_cache: bool

    @classmethod
    def from_outcomes(
        cls, outcomes: Sequence[ProcessingOutcome], execution_time_ms: float = 0.0
    ) -> "BatchSummary":
        cached = sum(1 for o in outcomes if o.success and o.restored_from_cache)
        failed = sum(1 for o in outcomes if not o.success)
        return cls(
            total=len(outcomes),
            cached=cached,
            pulled=len(outcomes) - cached - failed,
            failed=failed,
            total_size_bytes=sum(o.image_size_bytes or 0 for o in outcomes),
            execution_time_ms=execution_time_ms,
            all_from_cache=bool(outcomes) and cached == len(outcomes),
        )


class BatchCoordinator:
    """Runs the image processor for every image concurrently."""

    def __init__(self, processor: ImageProcessor) -> None:
        self.processor = processor

    async def _process_timed(self, spec: ImageSpec) -> ProcessingOutcome:
        start = time.perf_counter()
        outcome = await self.processor.process(spec)
        elapsed_ms = (time.perf_counter() - start) * 1000
        return dataclasses.replace(outcome, processing_time_ms=elapsed_ms)

    async def run(self, specs: Sequence[ImageSpec]) -> list[ProcessingOutcome]:
        """Process all images concurrently.

        One image failing never cancels or changes the others.

        Args:
            specs: Images to process, in declaration order

        Returns:
            One outcome per input, in input order
        """
        tasks = [self._process_timed(spec) for spec in specs]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        outcomes: list[ProcessingOutcome] = []
        for spec, result in zip(specs, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(f"Processing {spec.image} failed: {result}")
                result = ProcessingOutcome(
                    success=False,
                    restored_from_cache=False,
                    image_name=spec.image,
                    platform=spec.platform,
                    error=str(result),
                )
            outcomes.append(result)
        return outcomes
