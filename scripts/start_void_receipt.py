"""Start a receipt void workflow, or confirm / cancel one that is waiting.

Usage:
    python scripts/start_void_receipt.py start 1002 --reason "Duplicate entry" --actor jsmith
    python scripts/start_void_receipt.py confirm void-receipt-1002 --actor supervisor
    python scripts/start_void_receipt.py cancel void-receipt-1002

``start`` waits for the result unless --no-wait is given. A receipt in a
paid-out batch stays AWAITING_CONFIRMATION until ``confirm`` or ``cancel``
is sent, or the confirmation window runs out.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import configure_logging, get_logger
from temporal_client import get_temporal_client
from workflows.void_receipt_workflow import VoidReceiptWorkflow, VoidReceiptWorkflowInput


logger = get_logger("scripts.start_void_receipt")


async def start(args) -> int:
    settings = get_settings()
    client = await get_temporal_client(settings)
    workflow_id = f"void-receipt-{args.receipt_id}"

    handle = await client.start_workflow(
        VoidReceiptWorkflow.run,
        VoidReceiptWorkflowInput(
            receipt_id=args.receipt_id,
            reason=args.reason,
            actor=args.actor,
            confirmation_timeout_minutes=settings.void_confirmation_timeout_minutes,
        ),
        id=workflow_id,
        task_queue=settings.task_queue,
    )
    logger.info(f"Workflow started: {handle.id}")

    if args.no_wait:
        print(handle.id)
        return 0

    logger.info("Waiting for result...")
    result = await handle.result()
    print(json.dumps(asdict(result), indent=2, default=str))
    return 0 if result.status == "VOIDED" else 1


async def confirm(args) -> int:
    client = await get_temporal_client()
    handle = client.get_workflow_handle(args.workflow_id)
    await handle.signal(VoidReceiptWorkflow.confirm, args.actor)
    logger.info(f"Confirmation sent to {args.workflow_id} by {args.actor}")
    return 0


async def cancel(args) -> int:
    client = await get_temporal_client()
    handle = client.get_workflow_handle(args.workflow_id)
    await handle.signal(VoidReceiptWorkflow.cancel)
    logger.info(f"Cancellation sent to {args.workflow_id}")
    return 0


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Drive the receipt void workflow")
    commands = parser.add_subparsers(dest="command", required=True)

    start_parser = commands.add_parser("start", help="Start a void workflow")
    start_parser.add_argument("receipt_id", type=int)
    start_parser.add_argument("--reason", required=True)
    start_parser.add_argument("--actor", required=True)
    start_parser.add_argument("--no-wait", action="store_true", help="Print the workflow id and exit")
    start_parser.set_defaults(handler=start)

    confirm_parser = commands.add_parser("confirm", help="Confirm a waiting void")
    confirm_parser.add_argument("workflow_id")
    confirm_parser.add_argument("--actor", required=True)
    confirm_parser.set_defaults(handler=confirm)

    cancel_parser = commands.add_parser("cancel", help="Cancel a waiting void")
    cancel_parser.add_argument("workflow_id")
    cancel_parser.set_defaults(handler=cancel)

    args = parser.parse_args()
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    try:
        return asyncio.run(args.handler(args))
    except Exception as e:
        logger.error(f"Workflow command failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
