"""Run outputs, job summary and summary logging."""

import json
import logging
import os
import uuid
from typing import Any, Sequence

import aiofiles

from .core.types import ProcessingOutcome
from .processing.batch import BatchSummary

logger = logging.getLogger(__name__)


def format_duration(milliseconds: float) -> str:
    """Human readable duration (e.g., "850ms", "3.2s", "2m 5s")."""
    if milliseconds < 1000:
        return f"{round(milliseconds)}ms"
    seconds = milliseconds / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, rest = divmod(round(seconds), 60)
    return f"{minutes}m {rest}s"


def format_size(size_bytes: int | None) -> str:
    """Human readable size in binary units."""
    if size_bytes is None:
        return "N/A"
    size = float(size_bytes)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024:
            return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} {unit}"
        size /= 1024
    return f"{size:.1f} TiB"


def build_image_list(outcomes: Sequence[ProcessingOutcome]) -> list[dict[str, Any]]:
    """JSON-serializable per-image report entries, in outcome order."""
    return [
        {
            "name": outcome.image_name,
            "platform": outcome.platform or "default",
            "status": outcome.status.value,
            "size": outcome.image_size_bytes or 0,
            "digest": outcome.digest or "",
            "processingTimeMs": round(outcome.processing_time_ms or 0),
            "cacheKey": outcome.cache_key,
        }
        for outcome in outcomes
    ]


async def set_outputs(
    cache_hit: bool,
    image_list: list[dict[str, Any]],
    output_path: str | None = None,
) -> None:
    """Write ``cache-hit`` and ``image-list`` outputs.

    Outputs are appended to $GITHUB_OUTPUT when it is set; otherwise they
    are only logged.
    """
    outputs = {
        "cache-hit": "true" if cache_hit else "false",
        "image-list": json.dumps(image_list),
    }
    path = output_path or os.environ.get("GITHUB_OUTPUT")
    if not path:
        for name, value in outputs.items():
            logger.info(f"Output {name}={value}")
        return

    async with aiofiles.open(path, "a", encoding="utf-8") as f:
        for name, value in outputs.items():
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            await f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")


def _table_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def render_step_summary(
    outcomes: Sequence[ProcessingOutcome],
    summary: BatchSummary,
    compose_files: Sequence[str],
    skip_digest_verification: bool,
) -> str:
    """Markdown job summary: per-image table, totals and inputs."""
    lines = [
        "## Docker Compose Cache Results",
        "",
        "| Image | Platform | Status | Size | Processing Time |",
        "| --- | --- | --- | --- | --- |",
    ]
    for outcome in outcomes:
        status = outcome.status.value
        if outcome.error:
            status = f"{status}: {outcome.error}"
        lines.append(
            f"| `{_table_cell(outcome.image_name)}` "
            f"| {_table_cell(outcome.platform or 'default')} "
            f"| {_table_cell(status)} "
            f"| {format_size(outcome.image_size_bytes)} "
            f"| {format_duration(outcome.processing_time_ms or 0)} |"
        )

    lines += [
        "",
        f"**Total:** {summary.total} images in "
        f"{format_duration(summary.execution_time_ms)} "
        f"({summary.cached} from cache, {summary.pulled} pulled, "
        f"{summary.failed} failed, {format_size(summary.total_size_bytes)})",
    ]

    if compose_files:
        lines += ["", "### Compose files", ""]
        lines += [f"- `{path}`" for path in compose_files]

    if skip_digest_verification:
        lines += [
            "",
            "> Digest verification was skipped. Cached images were used without "
            "comparing them to the registry and may be outdated.",
        ]
    return "\n".join(lines) + "\n"


async def write_step_summary(
    outcomes: Sequence[ProcessingOutcome],
    summary: BatchSummary,
    compose_files: Sequence[str],
    skip_digest_verification: bool,
    summary_path: str | None = None,
) -> None:
    """Append the job summary to $GITHUB_STEP_SUMMARY, if it is set.

    Args:
        outcomes: Per-image outcomes in report order
        summary: Aggregate counts for the run
        compose_files: Compose files that were read
        skip_digest_verification: Whether cached images were trusted unverified
        summary_path: Override for the summary file (default: $GITHUB_STEP_SUMMARY)
    """
    path = summary_path or os.environ.get("GITHUB_STEP_SUMMARY")
    if not path:
        logger.debug("GITHUB_STEP_SUMMARY not set, skipping job summary")
        return

    content = render_step_summary(
        outcomes, summary, compose_files, skip_digest_verification
    )
    async with aiofiles.open(path, "a", encoding="utf-8") as f:
        await f.write(content)


def log_summary(summary: BatchSummary, outcomes: Sequence[ProcessingOutcome]) -> None:
    """Log one line per image and the aggregate result."""
    for outcome in outcomes:
        line = (
            f"{outcome.image_name} [{outcome.platform or 'default'}]: "
            f"{outcome.status.value} "
            f"({format_size(outcome.image_size_bytes)}, "
            f"{format_duration(outcome.processing_time_ms or 0)})"
        )
        if outcome.success:
            logger.info(line)
        else:
            logger.warning(f"{line}: {outcome.error}")

    logger.info(
        f"Processed {summary.total} images in "
        f"{format_duration(summary.execution_time_ms)}: "
        f"{summary.cached} from cache, {summary.pulled} pulled, "
        f"{summary.failed} failed"
    )
    if summary.all_from_cache:
        logger.info("All images restored from cache")
