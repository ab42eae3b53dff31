"""
Delivery request models

DeliveryRequest is the central entity: owned by exactly one tenant for its whole
life. Status and claim columns are written only by the delivery coordinator.
DeliveryStatusHistory is the append-only audit trail of lifecycle events.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from alltown.database import Base


class DeliveryStatus(str, enum.Enum):
    pending = "pending"
    available = "available"
    claimed = "claimed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({DeliveryStatus.completed, DeliveryStatus.cancelled})


class DeliveryEvent(str, enum.Enum):
    """Lifecycle events recorded in the status history."""

    created = "created"
    published = "published"  # pending -> available
    claimed = "claimed"
    released = "released"  # claimed -> available
    started = "started"  # claimed -> in_progress
    completed = "completed"
    cancelled = "cancelled"


class DeliveryRequest(Base):
    __tablename__ = "delivery_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(String(36), ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True)  # None = guest

    # Customer contact
    customer_name = Column(String(200), nullable=False)
    phone = Column(String(40), nullable=False)
    email = Column(String(320), nullable=False)

    # Addresses and schedule
    pickup_address = Column(Text, nullable=False)
    delivery_address = Column(Text, nullable=False)
    preferred_date = Column(String(20), nullable=False)
    preferred_time = Column(String(20), nullable=False)
    payment_method = Column(String(40), nullable=False)
    special_instructions = Column(Text, nullable=True)

    # Pricing, computed at creation
    is_rush = Column(Boolean, nullable=False, default=False)
    distance_miles = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    delivery_fee = Column(Numeric(10, 2), nullable=False)
    used_free_delivery = Column(Boolean, nullable=False, default=False)

    # Lifecycle
    status = Column(String(20), nullable=False, default=DeliveryStatus.available.value)
    claimed_by_driver = Column(String(36), ForeignKey("user_profiles.id", ondelete="RESTRICT"), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    driver_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    history = relationship(
        "DeliveryStatusHistory",
        back_populates="delivery",
        order_by="DeliveryStatusHistory.id",
        lazy="noload",
    )

    __table_args__ = (
        CheckConstraint(
            "(claimed_by_driver IS NULL AND claimed_at IS NULL) "
            "OR (claimed_by_driver IS NOT NULL AND claimed_at IS NOT NULL)",
            name="ck_delivery_requests_claim_pair",
        ),
        Index("ix_delivery_requests_tenant_status_created", "tenant_id", "status", "created_at"),
        Index("ix_delivery_requests_claimed_by_driver", "claimed_by_driver"),
    )

    def __repr__(self) -> str:
        return f"<DeliveryRequest(id={self.id}, tenant_id={self.tenant_id}, status={self.status})>"


class DeliveryStatusHistory(Base):
    __tablename__ = "delivery_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    delivery_id = Column(String(36), ForeignKey("delivery_requests.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    event = Column(String(20), nullable=False)
    from_status = Column(String(20), nullable=True)  # None for creation
    to_status = Column(String(20), nullable=False)
    actor_id = Column(String(36), nullable=True)  # None for guest creation
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    delivery = relationship("DeliveryRequest", back_populates="history")

    __table_args__ = (Index("ix_delivery_status_history_delivery", "delivery_id"),)
