"""Worker for the grower payments task queue.

Listens for tasks and executes the void workflow and the payment
reconciliation activities.

Run with --queue <name> to poll a queue other than the configured one.
"""

import argparse
import asyncio
from typing import Optional

from temporalio.worker import Worker

from activities.payments import PAYMENT_ACTIVITIES
from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.void_receipt_workflow import VoidReceiptWorkflow


logger = get_logger(__name__)


async def run_worker(queue: Optional[str] = None):
    """Start a worker listening on a task queue.

    Args:
        queue: Task queue to poll (defaults to TEMPORAL_TASK_QUEUE)

    Raises:
        Exception: If the connection to Temporal fails
    """
    settings = get_settings()
    task_queue = queue or settings.task_queue
    client = await get_temporal_client(settings)
    logger.info(f"Connected to Temporal: {client.namespace}")

    worker = Worker(
        client,
        task_queue=task_queue,
        workflows=[VoidReceiptWorkflow],
        activities=PAYMENT_ACTIVITIES,
    )
    logger.info(f"Worker created for queue '{task_queue}':")
    logger.info("  - Workflows: 1")
    logger.info(f"  - Activities: {len(PAYMENT_ACTIVITIES)}")

    try:
        logger.info("Worker running... (Ctrl+C to stop)")
        await worker.run()
    except Exception as e:
        logger.error(f"Worker error: {e}", exc_info=True)
        raise


def main():
    """Entry point for worker with CLI args."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Grower Payments Temporal Worker")
    parser.add_argument(
        "--queue", "-q",
        default=settings.task_queue,
        help=f"Task queue to poll (default: {settings.task_queue})",
    )
    args = parser.parse_args()

    configure_logging(level=settings.log_level, json_format=settings.log_json)
    try:
        asyncio.run(run_worker(queue=args.queue))
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")


if __name__ == "__main__":
    main()
