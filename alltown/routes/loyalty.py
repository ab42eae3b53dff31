"""
Loyalty Routes

GET /loyalty/me -> the caller's points and free-delivery credits with the
current tenant. Customers without an account yet get zeroes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from alltown.auth import get_current_profile
from alltown.database import get_db
from alltown.dependencies import get_current_tenant
from alltown.models.user_profile import UserProfile
from alltown.schemas.delivery import LoyaltyAccountResponse
from alltown.services.loyalty_service import LoyaltyLedger
from alltown.services.tenant_directory import TenantContext

router = APIRouter(prefix="/loyalty", tags=["Loyalty"])


@router.get("/me", response_model=LoyaltyAccountResponse)
async def get_my_loyalty_account(
    tenant: TenantContext = Depends(get_current_tenant),
    profile: UserProfile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
) -> LoyaltyAccountResponse:
    account = await LoyaltyLedger(db).get_account(profile.id, tenant.id)
    response = LoyaltyAccountResponse(
        points_for_free_delivery=tenant.points_for_free_delivery,
        enabled=tenant.enable_loyalty_program,
    )
    if account is not None:
        response.loyalty_points = account.loyalty_points
        response.total_deliveries = account.total_deliveries
        response.free_delivery_credits = account.free_delivery_credits
    return response
