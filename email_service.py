# email_service.py
import asyncio
import logging
from collections import defaultdict
from typing import Optional

import httpx
import resend
from sqlalchemy.orm import Session

import crud
import schemas
from config import (
    EMAIL_FROM,
    HTTP_TIMEOUT_SECONDS,
    NOTIFICATION_BATCH_DELAY_SECONDS,
    NOTIFICATION_BATCH_SIZE,
    RESEND_API_KEY,
)
from email_templates import generate_welcome_html, generate_yield_summary_html
from rewards import get_claimable_rewards_from_all_sources, summarize_claimable_rewards
from yield_calculator import calculate_user_yield_data

logger = logging.getLogger(__name__)

MOCK_ADDRESS = "0x742d35Cc6634C0532925a3b8D99D94e13aECCeA8"

MOCK_YIELD_DATA = schemas.YieldNotificationData(
    total_balance="142341.89",
    total_deposited="140000.00",
    total_yield="2341.89",
    yield_percentage=1.67,
    yield_24h="45.23",
    yield_24h_percentage=0.32,
    vault_breakdown=[
        schemas.VaultBreakdownItem(name="Alpha USDC Catalyst", balance="85420.12", net_yield="1420.12", apy=4.2),
        schemas.VaultBreakdownItem(name="Relend USDC", balance="32156.77", net_yield="612.34", apy=3.8),
        schemas.VaultBreakdownItem(name="OEV-boosted USDC", balance="18765.00", net_yield="245.67", apy=2.9),
        schemas.VaultBreakdownItem(name="Gauntlet USDC Core", balance="6000.00", net_yield="63.76", apy=2.1),
    ],
)

MOCK_CLAIMABLE_REWARDS = schemas.ClaimableRewardsData(usdc=175.93, morpho=52.16, fxn=0.02, total=303.90)


def email_config_status() -> dict:
    if not RESEND_API_KEY:
        return {"configured": False, "message": "RESEND_API_KEY environment variable is not set"}
    return {
        "configured": True,
        "message": "Resend API key is configured",
        "api_key_length": len(RESEND_API_KEY),
        "api_key_prefix": RESEND_API_KEY[:8] + "...",
    }


def build_summary_subject(yield_data: schemas.YieldNotificationData) -> str:
    total_earned = float(yield_data.total_yield)
    yield_24h = float(yield_data.yield_24h)
    return (
        f"💰 Daily Yield: {'+' if total_earned > 0 else ''}${abs(total_earned):.2f} Total | "
        f"{'+' if yield_24h > 0 else ''}${abs(yield_24h):.2f} 24h"
    )


async def _send(params: dict, description: str) -> bool:
    if not RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not configured. Email sending disabled.")
        return False

    resend.api_key = RESEND_API_KEY
    try:
        result = await asyncio.to_thread(resend.Emails.send, params)
    except Exception as e:
        logger.error(f"Failed to send {description} to {params['to']}: {e}", exc_info=True)
        return False

    email_id = result.get("id") if isinstance(result, dict) else None
    if not email_id:
        logger.error(f"Unexpected Resend API response: {result}")
        return False
    logger.info(f"{description.capitalize()} sent to {params['to']}: {email_id}")
    return True


async def send_yield_summary_email(
    email: str,
    address: str,
    yield_data: schemas.YieldNotificationData,
    claimable_rewards: Optional[schemas.ClaimableRewardsData] = None,
) -> bool:
    logger.info(f"Attempting to send yield summary email to {email} for address {address}")
    params = {
        "from": EMAIL_FROM,
        "to": [email],
        "subject": build_summary_subject(yield_data),
        "html": generate_yield_summary_html(yield_data, claimable_rewards),
        "headers": {
            "X-Entity-Ref-ID": address,
            "X-Notification-Type": "yield-summary",
        },
    }
    return await _send(params, "yield summary email")


async def send_welcome_email(email: str, address: str) -> bool:
    logger.info(f"Attempting to send welcome email to {email} for address {address}")
    params = {
        "from": EMAIL_FROM,
        "to": [email],
        "subject": "🎉 Welcome to Morpho Yield Portal Notifications",
        "html": generate_welcome_html(address),
    }
    return await _send(params, "welcome email")


async def send_test_email(email: str) -> bool:
    """Sends a summary built from fixed sample data."""
    return await send_yield_summary_email(email, MOCK_ADDRESS, MOCK_YIELD_DATA, MOCK_CLAIMABLE_REWARDS)


async def get_claimable_rewards_summary(
    address: str, client: Optional[httpx.AsyncClient] = None
) -> schemas.ClaimableRewardsData:
    rewards = await get_claimable_rewards_from_all_sources(address, client=client)
    return summarize_claimable_rewards(rewards)


async def process_daily_emails(
    db: Session,
    batch_size: int = NOTIFICATION_BATCH_SIZE,
    batch_delay: float = NOTIFICATION_BATCH_DELAY_SECONDS,
    client: Optional[httpx.AsyncClient] = None,
) -> schemas.DailyResults:
    """Emails a yield summary to every active email subscription, computing each wallet once."""
    if client is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as own_client:
            return await process_daily_emails(db, batch_size, batch_delay, own_client)

    emails_by_address: dict[str, list[str]] = defaultdict(list)
    for sub in crud.get_active_email_subscriptions(db):
        emails_by_address[sub.address].append(sub.email)

    results = schemas.DailyResults(total=sum(len(emails) for emails in emails_by_address.values()))
    if not emails_by_address:
        logger.warning("DAILY EMAIL: No email subscriptions found, skipping dispatch.")
        return results

    async def email_wallet(address: str, emails: list[str]) -> None:
        try:
            yield_data = await calculate_user_yield_data(db, address, client=client)
            if not yield_data:
                logger.info(f"No yield data found for {address}")
                return
            claimable_rewards = await get_claimable_rewards_summary(address, client)
            for email in emails:
                if await send_yield_summary_email(email, address, yield_data, claimable_rewards):
                    results.successful += 1
                    crud.update_last_emailed(db, address, email)
                else:
                    results.failed += 1
                    results.errors.append(f"Failed to email {email} for {address}")
        except Exception as e:
            results.failed += len(emails)
            error_msg = f"Error processing {address}: {e}"
            results.errors.append(error_msg)
            logger.error(error_msg, exc_info=True)

    wallets = list(emails_by_address.items())
    for start in range(0, len(wallets), batch_size):
        batch = wallets[start:start + batch_size]
        await asyncio.gather(*(email_wallet(address, emails) for address, emails in batch))
        if start + batch_size < len(wallets):
            await asyncio.sleep(batch_delay)

    logger.info(f"DAILY EMAIL: Finished. {results.successful} successful, {results.failed} failed")
    return results
