import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy.orm import Session

import crud
import schemas
from chains import DEFAULT_YIELD_CHAIN_IDS
from config import ADMIN_SECRET, CRON_SECRET
from dashboard import UnsupportedChainError, build_chain_vault_data
from database import get_db, initialize_database
from email_service import (
    MOCK_CLAIMABLE_REWARDS,
    MOCK_YIELD_DATA,
    email_config_status,
    get_claimable_rewards_summary,
    send_test_email,
    send_welcome_email,
    send_yield_summary_email,
)
from email_templates import generate_error_html, generate_no_data_html, generate_yield_summary_html
from morpho_api import MorphoAPIError
from notifications import (
    PushNotificationError,
    build_welcome_payload,
    process_daily_notifications,
    send_push_notification,
    send_yield_notification,
)
from rewards import get_claimable_rewards_from_all_sources, summarize_claimable_rewards
from yield_calculator import calculate_user_yield_data, clear_yield_history, get_yield_history
from yield_utils import sort_vaults

# --- LOGGING AND APP SETUP ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def require_bearer(authorization: Optional[str], secret: Optional[str]) -> None:
    """Rejects the request unless it carries `Bearer <secret>`. No secret configured means open access."""
    if secret and authorization != f"Bearer {secret}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("FastAPI app starting up...")
    initialize_database()
    yield
    logger.info("FastAPI app shutting down...")


app = FastAPI(
    lifespan=lifespan,
    title="Morpho Yield Monitor API"
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        detail = "Invalid request"
    elif errors[0]["type"] == "missing":
        detail = f"{errors[0]['loc'][-1]} is required"
    else:
        detail = errors[0]["msg"].removeprefix("Value error, ")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "message": str(exc)},
    )


# --- DATABASE ---
@app.get("/api/database/init", tags=["Database"])
def database_init_usage():
    return {
        "message": "Database initialization endpoint",
        "usage": "POST to this endpoint to initialize database tables",
    }


@app.post("/api/database/init", tags=["Database"])
def database_init(authorization: Optional[str] = Header(default=None)):
    require_bearer(authorization, ADMIN_SECRET)
    initialize_database()
    return {"success": True, "message": "Database initialized successfully"}


# --- PUSH NOTIFICATIONS ---
@app.post("/api/notifications/subscribe", tags=["Push"])
async def subscribe(request: schemas.SubscribeRequest, db: Session = Depends(get_db)):
    crud.save_user_subscription(db, request.address, request.subscription, request.chain_ids)

    try:
        await send_push_notification(request.subscription, build_welcome_payload(request.address))
    except PushNotificationError as e:
        # The subscription stands even when the welcome push does not go through
        logger.warning(f"Failed to send welcome notification: {e}")

    return {"success": True, "message": "Subscription saved successfully"}


@app.post("/api/notifications/unsubscribe", tags=["Push"])
def unsubscribe(request: schemas.AddressRequest, db: Session = Depends(get_db)):
    crud.remove_user_subscription(db, request.address)
    return {"success": True, "message": "Subscription removed successfully"}


@app.post("/api/notifications/test", tags=["Push"])
def test_notification(request: schemas.AddressRequest):
    logger.info(f"Test notification requested for address: {request.address}")
    return {"success": True, "message": "Notification subscription successful! (Test mode)"}


@app.post("/api/notifications/send", tags=["Push"])
async def send_notification(request: schemas.SendNotificationRequest, db: Session = Depends(get_db)):
    success = await send_yield_notification(db, request.address, request.yield_data)
    if not success:
        raise HTTPException(status_code=404, detail="Failed to send notification - user may not be subscribed")
    return {"success": True, "message": "Yield notification sent successfully"}


@app.get("/api/notifications/test-yield", tags=["Push"])
async def preview_yield_data(address: str = Query(min_length=1), db: Session = Depends(get_db)):
    yield_data = await calculate_user_yield_data(db, address, DEFAULT_YIELD_CHAIN_IDS)
    if not yield_data:
        raise HTTPException(status_code=404, detail="No yield data found for this address")
    return {"success": True, "message": "Yield data calculated successfully", "yield_data": yield_data}


@app.post("/api/notifications/test-yield", tags=["Push"])
async def send_test_yield_notification(request: schemas.AddressRequest, db: Session = Depends(get_db)):
    subscription = crud.get_user_subscription(db, request.address)
    if not subscription:
        raise HTTPException(status_code=404, detail="User not subscribed to notifications")

    yield_data = await calculate_user_yield_data(db, request.address, DEFAULT_YIELD_CHAIN_IDS)
    if not yield_data:
        raise HTTPException(status_code=404, detail="No yield data found for this address")

    success = await send_yield_notification(db, request.address, yield_data)
    subscription = crud.get_user_subscription(db, request.address)
    return {
        "success": success,
        "message": "Test yield notification sent!" if success else "Failed to send notification",
        "yield_data": yield_data,
        "subscription": {
            "address": subscription.address,
            "created_at": subscription.created_at,
            "last_notified": subscription.last_notified,
        },
    }


@app.get("/api/notifications/daily", tags=["Push"])
def daily_notifications_usage(db: Session = Depends(get_db)):
    return {
        "message": "Daily notifications endpoint",
        "usage": "POST to this endpoint to trigger daily notifications",
        "subscriptions": crud.count_subscriptions(db),
    }


@app.post("/api/notifications/daily", tags=["Push"])
async def daily_notifications(
    authorization: Optional[str] = Header(default=None), db: Session = Depends(get_db)
):
    require_bearer(authorization, CRON_SECRET)
    results = await process_daily_notifications(db)
    if results.total == 0:
        return {"success": True, "message": "No subscriptions found", "processed": 0}
    return {"success": True, "message": "Daily notifications processed", "results": results}


# --- EMAIL NOTIFICATIONS ---
@app.post("/api/notifications/email/subscribe", tags=["Email"])
async def email_subscribe(request: schemas.EmailSubscriptionRequest, db: Session = Depends(get_db)):
    crud.save_email_subscription(db, request.address, request.email)
    welcome_email_sent = await send_welcome_email(request.email, request.address)
    return {
        "success": True,
        "message": "Successfully subscribed to email notifications",
        "welcome_email_sent": welcome_email_sent,
    }


@app.post("/api/notifications/email/unsubscribe", tags=["Email"])
def email_unsubscribe(request: schemas.EmailSubscriptionRequest, db: Session = Depends(get_db)):
    crud.remove_email_subscription(db, request.address, request.email)
    return {"success": True, "message": "Successfully unsubscribed from email notifications"}


@app.get("/api/notifications/email/subscriptions", tags=["Email"])
def email_subscriptions(address: str = Query(min_length=1), db: Session = Depends(get_db)):
    emails = crud.get_emails_by_wallet(db, address)
    return {"success": True, "emails": emails, "count": len(emails)}


@app.post("/api/notifications/email/test", tags=["Email"])
async def email_test(request: schemas.EmailRequest):
    success = await send_test_email(request.email)
    return {
        "success": success,
        "message": "Test email sent successfully!" if success else "Failed to send test email",
    }


@app.post("/api/notifications/email/test-real", tags=["Email"])
async def email_test_real(request: schemas.EmailSubscriptionRequest, db: Session = Depends(get_db)):
    logger.info(f"Testing real yield email for {request.address} to {request.email}")
    yield_data = await calculate_user_yield_data(db, request.address)
    if not yield_data:
        raise HTTPException(
            status_code=404,
            detail="No yield data found for this address. Make sure the wallet has positions in Morpho vaults.",
        )

    claimable_rewards = await get_claimable_rewards_summary(request.address)
    success = await send_yield_summary_email(request.email, request.address, yield_data, claimable_rewards)
    return {
        "success": success,
        "message": "Real yield email sent successfully!" if success else "Failed to send real yield email",
        "yield_data": yield_data,
    }


@app.get("/api/notifications/email/preview", response_class=HTMLResponse, tags=["Email"])
def email_preview():
    return HTMLResponse(generate_yield_summary_html(MOCK_YIELD_DATA, MOCK_CLAIMABLE_REWARDS))


@app.get("/api/notifications/email/preview-real", response_class=HTMLResponse, tags=["Email"])
async def email_preview_real(address: str = Query(min_length=1), db: Session = Depends(get_db)):
    logger.info(f"Generating real yield preview for {address}")
    try:
        yield_data = await calculate_user_yield_data(db, address)
        if not yield_data:
            return HTMLResponse(generate_no_data_html(address), status_code=404)
        claimable_rewards = await get_claimable_rewards_summary(address)
        return HTMLResponse(generate_yield_summary_html(yield_data, claimable_rewards))
    except Exception as e:
        logger.error(f"Error generating real yield preview: {e}", exc_info=True)
        return HTMLResponse(generate_error_html(str(e)), status_code=500)


@app.get("/api/notifications/email/check-config", tags=["Email"])
def email_check_config():
    return email_config_status()


# --- DASHBOARD DATA ---
@app.get("/api/vaults/{chain_id}", response_model=schemas.ChainVaultData, tags=["Dashboard"])
async def read_chain_vaults(
    chain_id: int,
    address: Optional[str] = None,
    sort_by: Optional[str] = Query(default=None, pattern="^(apy|yield|balance|name)$"),
):
    try:
        data = await build_chain_vault_data(chain_id, address)
    except UnsupportedChainError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MorphoAPIError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if sort_by:
        data.vaults = sort_vaults(data.vaults, sort_by)
    return data


@app.get("/api/rewards/{address}", tags=["Dashboard"])
async def read_claimable_rewards(address: str, chain_id: int = 1):
    rewards = await get_claimable_rewards_from_all_sources(address, chain_id)
    return {"rewards": rewards, "summary": summarize_claimable_rewards(rewards)}


@app.get("/api/yield/{address}/history", response_model=List[schemas.HistoricalYieldData], tags=["Dashboard"])
def read_yield_history(address: str, days: int = Query(default=30, ge=1), db: Session = Depends(get_db)):
    return get_yield_history(db, address, days=days)


@app.delete("/api/yield/{address}/history", status_code=status.HTTP_204_NO_CONTENT, tags=["Dashboard"])
def delete_yield_history(address: str, db: Session = Depends(get_db)):
    clear_yield_history(db, address)
    return None
