"""
Entitlement lookup for the authenticated user.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from billing_engine.api.dependencies import get_components, require_user_uuid
from billing_engine.services.components import BillingComponents

router = APIRouter(prefix="/products", tags=["products"])


@router.get("/tier")
async def get_user_tier(
    owners: Optional[str] = Query(None, description="Comma-separated workspace owner uuids"),
    user_uuid: str = Depends(require_user_uuid),
    components: BillingComponents = Depends(get_components),
):
    owner_uuids = [owner.strip() for owner in (owners or "").split(",") if owner.strip()]
    entitlement = components.entitlements.get_applicable_tier_for_user(user_uuid, owner_uuids)
    return entitlement.to_dict()
