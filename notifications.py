# notifications.py
import asyncio
import json
import logging
import time
from typing import Optional

import httpx
from pywebpush import WebPushException, webpush
from sqlalchemy.orm import Session

import crud
import schemas
from config import (
    HTTP_TIMEOUT_SECONDS,
    NOTIFICATION_BATCH_DELAY_SECONDS,
    NOTIFICATION_BATCH_SIZE,
    VAPID_PRIVATE_KEY,
    VAPID_SUBJECT,
)
from yield_calculator import calculate_user_yield_data

logger = logging.getLogger(__name__)

MIN_NOTIFY_BALANCE = 0.01


class PushNotificationError(Exception):
    pass


async def send_push_notification(subscription: schemas.PushSubscriptionInfo, payload: dict) -> None:
    """Delivers a web push message. Raises PushNotificationError on failure."""
    if not VAPID_PRIVATE_KEY:
        raise PushNotificationError("VAPID_PRIVATE_KEY is not configured")
    try:
        await asyncio.to_thread(
            webpush,
            subscription_info=subscription.model_dump(),
            data=json.dumps(payload),
            vapid_private_key=VAPID_PRIVATE_KEY,
            vapid_claims={"sub": VAPID_SUBJECT},
        )
    except WebPushException as e:
        logger.error(f"Error sending push notification: {e}")
        raise PushNotificationError(str(e)) from e
    logger.info("Push notification sent successfully")


def build_yield_payload(address: str, yield_data: schemas.YieldNotificationData) -> dict:
    total_balance = float(yield_data.total_balance)
    change = yield_data.yield_24h_percentage
    sign = "+" if change > 0 else ""
    return {
        "title": "📈 Daily Yield Update",
        "body": f"Total: ${total_balance:.2f} | 24h: {sign}{change:.2f}%",
        "data": {
            "address": address,
            "yieldData": yield_data.model_dump(),
            "timestamp": int(time.time() * 1000),
        },
    }


def build_welcome_payload(address: str) -> dict:
    return {
        "title": "🔔 Notifications Enabled!",
        "body": "You'll now receive daily yield updates from your Morpho vaults.",
        "data": {"type": "welcome", "address": address},
    }


async def send_yield_notification(db: Session, address: str, yield_data: schemas.YieldNotificationData) -> bool:
    """Pushes a yield summary to a subscribed wallet. Returns False if unsubscribed or delivery fails."""
    user_sub = crud.get_user_subscription(db, address)
    if not user_sub:
        logger.info(f"No subscription found for address: {address}")
        return False

    try:
        await send_push_notification(user_sub.subscription, build_yield_payload(address, yield_data))
    except PushNotificationError as e:
        logger.error(f"Failed to send yield notification to {address}: {e}")
        return False

    crud.update_last_notified(db, address)
    return True


async def process_daily_notifications(
    db: Session,
    batch_size: int = NOTIFICATION_BATCH_SIZE,
    batch_delay: float = NOTIFICATION_BATCH_DELAY_SECONDS,
    client: Optional[httpx.AsyncClient] = None,
) -> schemas.DailyResults:
    """
    Computes and pushes yield summaries for every subscriber.
    Subscribers are handled in concurrent batches with a pause in between to stay under upstream rate limits.
    """
    if client is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as own_client:
            return await process_daily_notifications(db, batch_size, batch_delay, own_client)

    subscriptions = crud.get_all_subscriptions(db)
    results = schemas.DailyResults(total=len(subscriptions))
    if not subscriptions:
        logger.warning("DAILY: No subscriptions found, skipping dispatch.")
        return results

    logger.info(f"DAILY: Processing daily notifications for {len(subscriptions)} users")

    async def notify(sub: schemas.UserSubscription) -> None:
        try:
            yield_data = await calculate_user_yield_data(db, sub.address, sub.chain_ids, client)
            if not yield_data:
                logger.info(f"No yield data found for {sub.address}")
                return

            total_balance = float(yield_data.total_balance)
            if total_balance < MIN_NOTIFY_BALANCE:
                logger.info(f"Skipping {sub.address} - balance too low: ${total_balance}")
                return

            if await send_yield_notification(db, sub.address, yield_data):
                results.successful += 1
                logger.info(f"Sent notification to {sub.address}")
            else:
                results.failed += 1
                results.errors.append(f"Failed to send to {sub.address}")
        except Exception as e:
            results.failed += 1
            error_msg = f"Error processing {sub.address}: {e}"
            results.errors.append(error_msg)
            logger.error(error_msg, exc_info=True)

    for start in range(0, len(subscriptions), batch_size):
        batch = subscriptions[start:start + batch_size]
        await asyncio.gather(*(notify(sub) for sub in batch))
        if start + batch_size < len(subscriptions):
            await asyncio.sleep(batch_delay)

    logger.info(f"DAILY: Finished. {results.successful} successful, {results.failed} failed")
    return results
