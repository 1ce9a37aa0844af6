"""Sync runner entry point.

Mirrors every page of one wiki space into the local knowledge base. Pages
that are unchanged since the last run are skipped.

Usage:
    python -m sync.sync_runner <space_key> [space_name]
"""

import asyncio
import sys

from services.rag.RAGContext import build_context
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.sync import ProgressEvent


async def main(space_key: str, space_name: str | None = None) -> int:
    """Run a full sync of one space.

    Returns:
        int: Process exit code, 1 if any page failed.
    """
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    def _log_progress(event: ProgressEvent) -> None:
        if event.stage == "syncing":
            logger.info("[%d/%d] %s", event.current, event.total, event.message)
        elif event.stage == "analyzed" and event.plan:
            logger.info("Plan: %s", ", ".join(f"{k}={v}" for k, v in event.plan.items()))

    context = await build_context(config)
    try:
        report = await context.retrieval_service.sync_space(space_key, space_name, on_progress=_log_progress)
    finally:
        await context.close()

    logger.info(
        "Done: %d new, %d updated, %d unchanged, %d empty, %d failed, %d chunks.",
        report.new_count, report.update_count, report.skip_count, report.empty_count,
        len(report.failed_pages), report.chunk_count,
        color="green" if not report.failed_pages else "yellow",
    )
    for failed in report.failed_pages:
        logger.warning("Failed page %s (%s): %s", failed.title, failed.page_id, failed.error)
    return 1 if report.failed_pages else 0


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m sync.sync_runner <space_key> [space_name]", file=sys.stderr)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)))
