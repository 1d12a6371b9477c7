# crud.py
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.orm import Session
import models
import schemas

logger = logging.getLogger(__name__)


def _parse_chain_ids(value) -> list[int]:
    # Rows written by older deployments store a comma-separated string
    if isinstance(value, str):
        return [int(part) for part in value.split(",") if part.strip()]
    return [int(chain_id) for chain_id in value or []]


def _to_user_subscription(row: models.UserSubscription) -> schemas.UserSubscription:
    return schemas.UserSubscription(
        address=row.address,
        subscription=schemas.PushSubscriptionInfo(
            endpoint=row.endpoint,
            keys=schemas.PushKeys(p256dh=row.p256dh_key, auth=row.auth_key),
        ),
        chain_ids=_parse_chain_ids(row.chain_ids),
        created_at=row.created_at,
        last_notified=row.last_notified,
    )


# --- PUSH SUBSCRIPTIONS ---

def save_user_subscription(
    db: Session,
    address: str,
    subscription: schemas.PushSubscriptionInfo,
    chain_ids: Optional[List[int]] = None,
) -> tuple[models.UserSubscription, bool]:
    """
    Creates the subscription for an address or replaces the existing one.
    Returns the row and a boolean (True if created, False if updated).
    """
    address = address.lower()
    chain_ids = list(chain_ids) if chain_ids else [1]
    db_sub = db.query(models.UserSubscription).filter(models.UserSubscription.address == address).first()
    created = db_sub is None
    if created:
        db_sub = models.UserSubscription(address=address)
        db.add(db_sub)

    db_sub.endpoint = subscription.endpoint
    db_sub.p256dh_key = subscription.keys.p256dh
    db_sub.auth_key = subscription.keys.auth
    db_sub.chain_ids = chain_ids
    db.commit()
    db.refresh(db_sub)
    logger.info(f"Subscription saved for address: {address}")
    return db_sub, created


def get_user_subscription(db: Session, address: str) -> Optional[schemas.UserSubscription]:
    db_sub = db.query(models.UserSubscription).filter(models.UserSubscription.address == address.lower()).first()
    if db_sub is None:
        return None
    return _to_user_subscription(db_sub)


def remove_user_subscription(db: Session, address: str) -> bool:
    """Removes the subscription for an address. Returns True if deleted, False if not found."""
    db_sub = db.query(models.UserSubscription).filter(models.UserSubscription.address == address.lower()).first()
    if db_sub:
        db.delete(db_sub)
        db.commit()
        logger.info(f"Subscription removed for address: {address}")
        return True
    return False


def get_all_subscriptions(db: Session) -> List[schemas.UserSubscription]:
    """All push subscriptions, newest first."""
    rows = (
        db.query(models.UserSubscription)
        .order_by(models.UserSubscription.created_at.desc(), models.UserSubscription.id.desc())
        .all()
    )
    return [_to_user_subscription(row) for row in rows]


def count_subscriptions(db: Session) -> int:
    return db.query(models.UserSubscription).count()


def update_last_notified(db: Session, address: str, now: Optional[datetime] = None) -> None:
    now = now or datetime.now(timezone.utc)
    db.query(models.UserSubscription).filter(models.UserSubscription.address == address.lower()).update(
        {models.UserSubscription.last_notified: now, models.UserSubscription.updated_at: now}
    )
    db.commit()


# --- YIELD HISTORY ---

def save_yield_history(
    db: Session,
    address: str,
    total_balance: float,
    total_deposited: float,
    total_yield: float,
    chain_data=None,
    timestamp: Optional[datetime] = None,
) -> models.YieldHistory:
    db_entry = models.YieldHistory(
        address=address.lower(),
        total_balance=total_balance,
        total_deposited=total_deposited,
        total_yield=total_yield,
        chain_data=chain_data,
        timestamp=timestamp or datetime.now(timezone.utc),
    )
    db.add(db_entry)
    db.commit()
    db.refresh(db_entry)
    return db_entry


def get_yield_history(
    db: Session, address: str, days: int = 30, now: Optional[datetime] = None
) -> List[schemas.HistoricalYieldData]:
    """Snapshots from the last `days` days, newest first."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    rows = (
        db.query(models.YieldHistory)
        .filter(models.YieldHistory.address == address.lower(), models.YieldHistory.timestamp >= cutoff)
        .order_by(models.YieldHistory.timestamp.desc())
        .all()
    )
    return [schemas.HistoricalYieldData.model_validate(row) for row in rows]


def get_yield_24h_ago(
    db: Session, address: str, now: Optional[datetime] = None
) -> Optional[schemas.HistoricalYieldData]:
    """The most recent snapshot that is at least 24 hours old."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=24)
    row = (
        db.query(models.YieldHistory)
        .filter(models.YieldHistory.address == address.lower(), models.YieldHistory.timestamp <= cutoff)
        .order_by(models.YieldHistory.timestamp.desc())
        .first()
    )
    if row is None:
        return None
    return schemas.HistoricalYieldData.model_validate(row)


def cleanup_old_yield_history(db: Session, days: int = 90, now: Optional[datetime] = None) -> int:
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    deleted = (
        db.query(models.YieldHistory)
        .filter(models.YieldHistory.timestamp < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Cleaned up {deleted} old yield history records")
    return deleted


def clear_yield_history(db: Session, address: str) -> int:
    deleted = (
        db.query(models.YieldHistory)
        .filter(models.YieldHistory.address == address.lower())
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


# --- EMAIL SUBSCRIPTIONS ---

def save_email_subscription(db: Session, address: str, email: str) -> tuple[models.EmailSubscription, bool]:
    """
    Gets an email subscription by (address, email) or creates a new one.
    An existing inactive subscription is switched back on.
    """
    address, email = address.lower(), email.lower()
    db_sub = (
        db.query(models.EmailSubscription)
        .filter(models.EmailSubscription.address == address, models.EmailSubscription.email == email)
        .first()
    )
    if db_sub:
        if not db_sub.is_active:
            db_sub.is_active = True
            db.commit()
            db.refresh(db_sub)
        return db_sub, False

    db_sub = models.EmailSubscription(address=address, email=email, is_active=True)
    db.add(db_sub)
    db.commit()
    db.refresh(db_sub)
    return db_sub, True


def remove_email_subscription(db: Session, address: str, email: str) -> bool:
    """Deactivates an email subscription. Returns False if it did not exist."""
    updated = (
        db.query(models.EmailSubscription)
        .filter(
            models.EmailSubscription.address == address.lower(),
            models.EmailSubscription.email == email.lower(),
        )
        .update({models.EmailSubscription.is_active: False})
    )
    db.commit()
    return updated > 0


def get_emails_by_wallet(db: Session, address: str) -> List[str]:
    """Active email addresses subscribed for a wallet."""
    rows = (
        db.query(models.EmailSubscription.email)
        .filter(models.EmailSubscription.address == address.lower(), models.EmailSubscription.is_active.is_(True))
        .order_by(models.EmailSubscription.created_at, models.EmailSubscription.id)
        .all()
    )
    return [email for email, in rows]


def get_active_email_subscriptions(db: Session) -> List[models.EmailSubscription]:
    return (
        db.query(models.EmailSubscription)
        .filter(models.EmailSubscription.is_active.is_(True))
        .order_by(models.EmailSubscription.id)
        .all()
    )


def update_last_emailed(db: Session, address: str, email: str, now: Optional[datetime] = None) -> None:
    db.query(models.EmailSubscription).filter(
        models.EmailSubscription.address == address.lower(),
        models.EmailSubscription.email == email.lower(),
    ).update({models.EmailSubscription.last_emailed: now or datetime.now(timezone.utc)})
    db.commit()
