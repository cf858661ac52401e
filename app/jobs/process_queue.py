"""
Scheduled job: one queue consumer invocation.

Receives up to --max-messages jobs, settles each (delete or leave for
redelivery) and exits. Meant to be run by cron / a platform scheduler.
Run via: python -m app.jobs.process_queue [--max-messages 10] [--wait-seconds 10]
"""

import asyncio
import logging
import sys

from app.core.config import settings
from app.core.errors import TransportError
from app.db.session import SessionLocal
from app.services.messaging.notifier import TelegramNotifier
from app.services.queue.client import build_queue_client
from app.services.queue.consumer import ConsumerReport, process_once

logger = logging.getLogger(__name__)


async def run(max_messages: int, wait_seconds: int) -> ConsumerReport:
    db = SessionLocal()
    try:
        return await process_once(
            db,
            build_queue_client(settings),
            TelegramNotifier(settings),
            max_messages=max_messages,
            wait_seconds=wait_seconds,
        )
    finally:
        db.close()


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for one consumer pass."""
    import argparse

    parser = argparse.ArgumentParser(description="Process one batch of queued jobs")
    parser.add_argument(
        "--max-messages",
        type=int,
        default=settings.queue_max_messages,
        help=f"Jobs to receive, at most 10 (default: {settings.queue_max_messages})",
    )
    parser.add_argument(
        "--wait-seconds",
        type=int,
        default=settings.queue_wait_seconds,
        help=f"Long-poll wait, at most 20 (default: {settings.queue_wait_seconds})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        report = asyncio.run(run(args.max_messages, args.wait_seconds))
    except TransportError as e:
        logger.error(f"Queue receive failed: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Queue processing failed: {e}", exc_info=True)
        sys.exit(1)
    logger.info(f"Queue processing completed: {report.as_dict()}")


if __name__ == "__main__":
    main()
