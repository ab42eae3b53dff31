"""
Loyalty models

One account per (user, tenant). LoyaltyCreditEvent rows are the idempotency
keys for ledger credits: (delivery_id, event) is unique, so a completion can be
credited at most once.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from alltown.database import Base


class CustomerLoyaltyAccount(Base):
    __tablename__ = "customer_loyalty_accounts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    loyalty_points = Column(Integer, nullable=False, default=0)
    total_deliveries = Column(Integer, nullable=False, default=0)
    free_delivery_credits = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_loyalty_account_user_tenant"),
        CheckConstraint("free_delivery_credits >= 0", name="ck_loyalty_account_credits"),
    )


class LoyaltyCreditEvent(Base):
    __tablename__ = "loyalty_credit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    delivery_id = Column(String(36), ForeignKey("delivery_requests.id", ondelete="CASCADE"), nullable=False)
    event = Column(String(20), nullable=False)
    account_id = Column(String(36), ForeignKey("customer_loyalty_accounts.id", ondelete="CASCADE"), nullable=False)
    points_awarded = Column(Integer, nullable=False, default=0)
    credits_awarded = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (UniqueConstraint("delivery_id", "event", name="uq_loyalty_credit_event"),)
