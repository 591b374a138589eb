"""Provisioning gateway clients (storage, VPN, object storage)."""

from billing_engine.integrations.gateways.exceptions import (
    GatewayConflictError,
    GatewayConnectionError,
    GatewayError,
    GatewayNotFoundError,
)
from billing_engine.integrations.gateways.object_storage import ObjectStorageClient
from billing_engine.integrations.gateways.storage import (
    LegacyDriveGatewayClient,
    StorageGatewayClient,
)
from billing_engine.integrations.gateways.vpn import VpnGatewayClient

__all__ = [
    "GatewayError",
    "GatewayNotFoundError",
    "GatewayConflictError",
    "GatewayConnectionError",
    "StorageGatewayClient",
    "LegacyDriveGatewayClient",
    "VpnGatewayClient",
    "ObjectStorageClient",
]
