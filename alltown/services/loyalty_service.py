"""
Loyalty Ledger

Points and free-delivery credits per (customer, tenant).

A completed delivery placed by a signed-in customer earns one point; once the
tenant's threshold is reached the points convert into a free-delivery credit.
Deliveries paid with a credit count towards total deliveries but earn nothing.

The ledger never commits: it writes into the caller's session so a credit or
debit lands in the same transaction as the status change or insert that
caused it.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.models.delivery_request import DeliveryEvent, DeliveryRequest
from alltown.models.loyalty import CustomerLoyaltyAccount, LoyaltyCreditEvent

logger = logging.getLogger(__name__)

POINTS_PER_DELIVERY = 1


class LoyaltyLedger:
    """Loyalty account reads, completion credits and free-delivery debits."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_account(self, user_id: str, tenant_id: str) -> CustomerLoyaltyAccount | None:
        result = await self.db.execute(
            select(CustomerLoyaltyAccount)
            .where(CustomerLoyaltyAccount.user_id == user_id, CustomerLoyaltyAccount.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def credit_completion(self, delivery: DeliveryRequest, tenant) -> bool:
        """
        Credit a completed delivery to its customer.

        At most once per delivery: the (delivery_id, "completed") credit event
        is the idempotency key. Returns True when a credit was written.

        Args:
            delivery: The delivery that just reached `completed`
            tenant: TenantContext carrying the loyalty configuration
        """
        if delivery.user_id is None:
            return False
        if not tenant.enable_loyalty_program:
            logger.debug("Loyalty program disabled for tenant %s", tenant.id)
            return False

        existing = await self.db.execute(
            select(LoyaltyCreditEvent.id).where(
                LoyaltyCreditEvent.delivery_id == delivery.id,
                LoyaltyCreditEvent.event == DeliveryEvent.completed.value,
            )
        )
        if existing.first() is not None:
            logger.info("Loyalty credit already applied for delivery %s", delivery.id)
            return False

        account = await self._ensure_account(delivery.user_id, delivery.tenant_id)
        points = 0 if delivery.used_free_delivery else POINTS_PER_DELIVERY

        await self.db.execute(
            update(CustomerLoyaltyAccount)
            .where(CustomerLoyaltyAccount.id == account.id)
            .values(
                loyalty_points=CustomerLoyaltyAccount.loyalty_points + points,
                total_deliveries=CustomerLoyaltyAccount.total_deliveries + 1,
            )
            .execution_options(synchronize_session=False)
        )

        threshold = tenant.points_for_free_delivery
        converted = await self.db.execute(
            update(CustomerLoyaltyAccount)
            .where(
                CustomerLoyaltyAccount.id == account.id,
                CustomerLoyaltyAccount.loyalty_points >= threshold,
            )
            .values(
                loyalty_points=CustomerLoyaltyAccount.loyalty_points - threshold,
                free_delivery_credits=CustomerLoyaltyAccount.free_delivery_credits + 1,
            )
            .execution_options(synchronize_session=False)
        )
        credits = converted.rowcount

        self.db.add(
            LoyaltyCreditEvent(
                delivery_id=delivery.id,
                event=DeliveryEvent.completed.value,
                account_id=account.id,
                points_awarded=points,
                credits_awarded=credits,
            )
        )
        await self.db.flush()

        logger.info(
            f"Loyalty credited: user={delivery.user_id} tenant={delivery.tenant_id} "
            f"delivery={delivery.id} points={points} credits={credits}"
        )
        return True

    async def consume_free_delivery(self, user_id: str, tenant_id: str) -> bool:
        """
        Debit one free-delivery credit.

        A single conditional UPDATE, so two concurrent requests can never spend
        the same credit. Returns False when no credit was available.
        """
        result = await self.db.execute(
            update(CustomerLoyaltyAccount)
            .where(
                CustomerLoyaltyAccount.user_id == user_id,
                CustomerLoyaltyAccount.tenant_id == tenant_id,
                CustomerLoyaltyAccount.free_delivery_credits >= 1,
            )
            .values(free_delivery_credits=CustomerLoyaltyAccount.free_delivery_credits - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _ensure_account(self, user_id: str, tenant_id: str) -> CustomerLoyaltyAccount:
        account = await self.get_account(user_id, tenant_id)
        if account is not None:
            return account

        insert = sqlite_insert if self.db.get_bind().dialect.name == "sqlite" else pg_insert
        await self.db.execute(
            insert(CustomerLoyaltyAccount)
            .values(user_id=user_id, tenant_id=tenant_id)
            .on_conflict_do_nothing(index_elements=["user_id", "tenant_id"])
        )
        return await self.get_account(user_id, tenant_id)
