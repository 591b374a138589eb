"""
FastAPI application entry point for the billing engine.

Receives payments-processor webhooks, serves effective entitlements and
accepts support-tool feature overrides.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from billing_engine.api.dependencies import create_clients
from billing_engine.api.routes import gateway, health, products, webhooks_stripe
from billing_engine.config import get_settings
from billing_engine.database.session import dispose_engine
from billing_engine.errors import BillingEngineError
from billing_engine.integrations.gateways.exceptions import GatewayError
from billing_engine.integrations.payments.exceptions import PaymentsError

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    logger.info("Starting billing engine", extra={"env": settings.env})
    app.state.clients = create_clients(settings)

    yield

    logger.info("Shutting down billing engine")
    await app.state.clients.close()
    dispose_engine()


app = FastAPI(
    title="Billing Engine",
    description="Entitlement resolution and subscription lifecycle",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(BillingEngineError)
async def billing_engine_error_handler(request: Request, exc: BillingEngineError):
    logger.warning(
        "Request failed",
        extra={"path": request.url.path, "kind": exc.kind.value, "error": exc.message}
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    logger.error(
        "Gateway call failed",
        extra={"path": request.url.path, "gateway": exc.gateway, "status_code": exc.status_code}
    )
    return JSONResponse(status_code=502, content={"error": "downstream", "message": exc.message})


@app.exception_handler(PaymentsError)
async def payments_error_handler(request: Request, exc: PaymentsError):
    logger.error(
        "Payments processor call failed",
        extra={"path": request.url.path, "status_code": exc.status_code}
    )
    return JSONResponse(status_code=502, content={"error": "downstream", "message": exc.message})


app.include_router(health.router)
app.include_router(webhooks_stripe.router)
app.include_router(gateway.router)
app.include_router(products.router)
