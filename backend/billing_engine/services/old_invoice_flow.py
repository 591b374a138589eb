"""
Legacy provisioning for products that have no tier in the catalog.

Business plans size the workspace by seat count; individual plans go
through the legacy drive gateway.
"""

import logging
from typing import Optional

from billing_engine.errors import BadRequestError
from billing_engine.integrations.gateways.exceptions import GatewayNotFoundError
from billing_engine.integrations.gateways.storage import (
    LegacyDriveGatewayClient,
    StorageGatewayClient,
)
from billing_engine.services.invoice_context import InvoiceContext

logger = logging.getLogger(__name__)


async def handle_old_invoice_completed_flow(
    ctx: InvoiceContext,
    user_uuid: str,
    storage_gateway: StorageGatewayClient,
    legacy_gateway: LegacyDriveGatewayClient,
    log: Optional[logging.Logger] = None,
) -> None:
    """
    Raises:
        BadRequestError: Business invoice without a seat count
    """
    log = log or logger

    if ctx.is_business:
        seats = ctx.line_item.get("quantity")
        if not seats:
            raise BadRequestError(
                f"Business invoice {ctx.invoice_id} has no seat count",
                invoice_id=ctx.invoice_id,
            )

        try:
            await storage_gateway.update_workspace_storage(user_uuid, ctx.max_space_bytes, seats)
            log.info(
                "Workspace storage updated",
                extra={"user_uuid": user_uuid, "seats": seats, "invoice_id": ctx.invoice_id}
            )
        except GatewayNotFoundError:
            address = (ctx.customer.get("address") or {}).get("line1")
            await storage_gateway.initialize_workspace(
                user_uuid,
                ctx.max_space_bytes,
                seats,
                address=address,
                phone_number=ctx.customer.get("phone"),
            )
        return

    await legacy_gateway.create_or_update_user(ctx.max_space_bytes, ctx.customer_email)
    await legacy_gateway.update_user_tier(user_uuid, ctx.product_id)
    log.info(
        "Legacy storage and tier updated",
        extra={"user_uuid": user_uuid, "product_id": ctx.product_id, "invoice_id": ctx.invoice_id}
    )
