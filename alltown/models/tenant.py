"""
Tenant model

Each Tenant is an isolated delivery business. Tenant-scoped tables reference
tenants.id with ON DELETE RESTRICT, so a tenant cannot be removed while it still
owns rows.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, String
from sqlalchemy.orm import relationship

from alltown.database import Base


class PlanType(str, enum.Enum):
    trial = "trial"
    basic = "basic"
    premium = "premium"
    enterprise = "enterprise"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_name = Column(String(200), nullable=False)
    subdomain = Column(String(63), nullable=True, unique=True)  # saras.alltowndelivery.com
    custom_domain = Column(String(253), nullable=True, unique=True)  # sarasquickiedelivery.com
    slug = Column(String(100), nullable=True, unique=True)
    logo_url = Column(String(500), nullable=True)
    primary_color = Column(String(7), nullable=False, default="#0369a1")
    is_active = Column(Boolean, nullable=False, default=True)
    plan_type = Column(String(20), nullable=False, default=PlanType.trial.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    business_settings = relationship("BusinessSettings", back_populates="tenant", uselist=False, lazy="selectin")

    __table_args__ = (Index("idx_tenant_active", "is_active"),)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, subdomain={self.subdomain})>"
