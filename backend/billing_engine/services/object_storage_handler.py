"""
Object storage reactivation on a paid invoice.
"""

import logging
from typing import Optional

from billing_engine.integrations.gateways.exceptions import GatewayNotFoundError
from billing_engine.integrations.gateways.object_storage import ObjectStorageClient
from billing_engine.services.invoice_context import InvoiceContext

logger = logging.getLogger(__name__)


async def handle_object_storage_invoice_completed(
    ctx: InvoiceContext,
    object_storage: ObjectStorageClient,
    log: Optional[logging.Logger] = None,
) -> bool:
    """
    Reactivate the customer's object storage account if it was suspended.

    Only single-line invoices are handled. An account the gateway does not
    know is ignored.

    Returns:
        True if the account was reactivated
    """
    log = log or logger
    if ctx.line_count != 1:
        log.info(
            "Invoice not handled by object storage: unexpected line count",
            extra={"invoice_id": ctx.invoice_id, "lines": ctx.line_count}
        )
        return False

    try:
        await object_storage.reactivate_account(ctx.customer_id)
    except GatewayNotFoundError:
        log.warning(
            "Object storage account not found, nothing to reactivate",
            extra={"invoice_id": ctx.invoice_id, "customer_id": ctx.customer_id}
        )
        return False

    log.info(
        "Object storage account reactivated",
        extra={"invoice_id": ctx.invoice_id, "customer_id": ctx.customer_id}
    )
    return True
