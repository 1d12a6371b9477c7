# models.py
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.sql import func
from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserSubscription(Base):
    """
    A wallet's web push subscription. One row per wallet address.
    """
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    address = Column(String, unique=True, index=True, nullable=False)
    endpoint = Column(Text, nullable=False)
    p256dh_key = Column(Text, nullable=False)
    auth_key = Column(Text, nullable=False)
    chain_ids = Column(JSON, nullable=False, default=lambda: [1])
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    last_notified = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)


class YieldHistory(Base):
    """
    Point-in-time totals for a wallet, diffed against later snapshots for the 24h change.
    """
    __tablename__ = "yield_history"
    __table_args__ = (
        Index("idx_yield_history_address_timestamp", "address", "timestamp"),
    )

    id = Column(Integer, primary_key=True, index=True)
    address = Column(String, nullable=False)
    total_balance = Column(Numeric(18, 6, asdecimal=False), nullable=False)
    total_deposited = Column(Numeric(18, 6, asdecimal=False), nullable=False)
    total_yield = Column(Numeric(18, 6, asdecimal=False), nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    chain_data = Column(JSON, nullable=True)


class EmailSubscription(Base):
    __tablename__ = "email_subscriptions"
    __table_args__ = (
        UniqueConstraint("address", "email", name="uq_email_subscriptions_address_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    address = Column(String, index=True, nullable=False)
    email = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    last_emailed = Column(DateTime(timezone=True), nullable=True)
