"""
Celery Tasks for periodic wallet maintenance
"""
import asyncio
from contextlib import contextmanager

from marketplace_wallet.workers.celery_app import celery_app
from marketplace_wallet.db.database import get_task_session
from marketplace_wallet.domain.services.expiry_service import ExpiryService
from marketplace_wallet.core.logging import get_logger, set_correlation_id

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            # Cancel all pending tasks
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            # Wait for tasks to be cancelled
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    # Set correlation ID for task tracking
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@celery_app.task(name="marketplace_wallet.workers.tasks.process_expired_coins")
def process_expired_coins():
    """
    פקיעה יומית של מנות מטבעות שעבר תוקפן.

    idempotent: מנה שכבר קוזזה לא תקוזז שוב, גם אם שתי ריצות חופפות.
    """

    async def _process():
        async with get_task_session() as db:
            coins_expired = await ExpiryService(db).process_expired_coins()
            return {"coins_expired": coins_expired}

    return run_async(_process())
