"""
Business settings: the per-tenant fee schedule and loyalty configuration.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from alltown.database import Base


class BusinessSettings(Base):
    __tablename__ = "business_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, unique=True)

    # Fee schedule
    base_delivery_fee = Column(Numeric(10, 2), nullable=False, default=Decimal("3.00"))
    price_per_mile = Column(Numeric(10, 2), nullable=False, default=Decimal("1.50"))
    base_fee_radius_miles = Column(Numeric(10, 2), nullable=False, default=Decimal("10.00"))
    rush_delivery_multiplier = Column(Numeric(10, 2), nullable=False, default=Decimal("1.5"))

    # Loyalty program
    enable_loyalty_program = Column(Boolean, nullable=False, default=True)
    points_for_free_delivery = Column(Integer, nullable=False, default=10)

    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    tenant = relationship("Tenant", back_populates="business_settings")

    __table_args__ = (
        CheckConstraint("base_delivery_fee >= 0", name="ck_business_settings_base_fee"),
        CheckConstraint("price_per_mile >= 0", name="ck_business_settings_price_per_mile"),
        CheckConstraint("base_fee_radius_miles >= 0", name="ck_business_settings_radius"),
        CheckConstraint("rush_delivery_multiplier >= 1", name="ck_business_settings_rush"),
        CheckConstraint("points_for_free_delivery > 0", name="ck_business_settings_points"),
    )
