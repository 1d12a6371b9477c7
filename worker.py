# worker.py
import logging

import httpx
from arq import cron
from arq.connections import RedisSettings

import crud
from config import DAILY_NOTIFICATION_HOUR, HTTP_TIMEOUT_SECONDS, REDIS_URL, YIELD_HISTORY_RETENTION_DAYS
from database import get_async_db, initialize_database
from email_service import process_daily_emails
from notifications import process_daily_notifications

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

REDIS_SETTINGS = RedisSettings.from_dsn(REDIS_URL)


async def on_startup(ctx):
    """
    This runs once when the worker starts.
    A shared HTTP client is created here and reused by every job.
    """
    logger.info("Worker starting up...")
    initialize_database()
    ctx['http_client'] = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    logger.info("HTTP client initialized in worker.")


async def on_shutdown(ctx):
    """This runs once when the worker shuts down."""
    logger.info("Worker shutting down...")
    client = ctx.get('http_client')
    if client:
        await client.aclose()
    logger.info("HTTP client closed in worker.")


async def send_daily_notifications(ctx):
    """Computes yield for every push subscriber and sends the daily summary."""
    logger.info("WORKER: Starting daily push notifications")
    async with get_async_db() as db:
        results = await process_daily_notifications(db, client=ctx.get('http_client'))
    logger.info(f"WORKER: Push results {results.successful}/{results.total} sent, {results.failed} failed")
    return results.model_dump()


async def send_daily_emails(ctx):
    logger.info("WORKER: Starting daily summary emails")
    async with get_async_db() as db:
        results = await process_daily_emails(db, client=ctx.get('http_client'))
    logger.info(f"WORKER: Email results {results.successful}/{results.total} sent, {results.failed} failed")
    return results.model_dump()


async def cleanup_yield_history(ctx):
    async with get_async_db() as db:
        deleted = crud.cleanup_old_yield_history(db, days=YIELD_HISTORY_RETENTION_DAYS)
    return deleted


# This class defines the worker's settings for ARQ
class WorkerSettings:
    functions = [send_daily_notifications, send_daily_emails, cleanup_yield_history]
    cron_jobs = [
        cron(send_daily_notifications, hour=DAILY_NOTIFICATION_HOUR, minute=0),
        cron(send_daily_emails, hour=DAILY_NOTIFICATION_HOUR, minute=15),
        cron(cleanup_yield_history, hour=3, minute=30),
    ]
    on_startup = on_startup
    on_shutdown = on_shutdown
    redis_settings = REDIS_SETTINGS
