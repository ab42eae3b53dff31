"""
User profiles

A profile mirrors an identity-provider user inside one tenant: its id is the
token subject. Drivers carry an on-duty flag.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String

from alltown.constants.roles import DEFAULT_ROLE
from alltown.database import Base


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False, index=True)
    email = Column(String(320), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    phone = Column(String(40), nullable=True)
    role = Column(String(20), nullable=False, default=DEFAULT_ROLE.value)  # customer | driver | dispatcher | admin
    is_on_duty = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("ix_user_profiles_tenant_role", "tenant_id", "role"),)

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, role={self.role}, tenant_id={self.tenant_id})>"
