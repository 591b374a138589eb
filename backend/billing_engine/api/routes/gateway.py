"""
Internal gateway endpoints used by support tooling.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from billing_engine.api.dependencies import get_components, require_gateway_token
from billing_engine.services.components import BillingComponents

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gateway", tags=["gateway"])


class FeatureOverrideRequest(BaseModel):
    service: str = Field(..., min_length=1)


class FeatureOverrideResponse(BaseModel):
    user_uuid: str
    service: str
    features_per_service: Dict[str, Any] = Field(default_factory=dict)


@router.post("/users/{user_uuid}/features", response_model=FeatureOverrideResponse)
async def upsert_user_feature_override(
    user_uuid: str,
    body: FeatureOverrideRequest,
    _claims: Dict[str, Any] = Depends(require_gateway_token),
    components: BillingComponents = Depends(get_components),
):
    """
    Grant one service to a user out-of-band.

    400 for a service that cannot be overridden, 404 for an unknown user.
    """
    record = components.feature_overrides.upsert_custom_user_features(user_uuid, body.service)
    logger.info(
        "Feature override requested",
        extra={"user_uuid": user_uuid, "service": body.service}
    )
    return FeatureOverrideResponse(
        user_uuid=user_uuid,
        service=body.service,
        features_per_service=dict(record.features_per_service) if record else {},
    )
