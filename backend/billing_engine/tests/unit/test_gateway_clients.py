"""
Tests for the provisioning gateway clients and bearer-token verification.

Gateways are exercised against httpx.MockTransport; no network access.
"""

import base64
import json
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from billing_engine.auth.tokens import TokenVerificationError, verify_gateway_token, verify_user_token
from billing_engine.integrations.gateways.exceptions import (
    GatewayConflictError,
    GatewayConnectionError,
    GatewayError,
    GatewayNotFoundError,
)
from billing_engine.integrations.gateways.object_storage import ObjectStorageClient
from billing_engine.integrations.gateways.storage import LegacyDriveGatewayClient, StorageGatewayClient
from billing_engine.integrations.gateways.vpn import VpnGatewayClient

USER_SECRET = "user-token-secret-of-at-least-32-bytes"


@pytest.fixture(scope="module")
def rsa_keys():
    """(encoded private key, encoded public key), base64 PEM as stored in env."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(private_pem).decode(), base64.b64encode(public_pem).decode()


class Recorder:
    """MockTransport handler recording requests and replying with a fixed status."""

    def __init__(self, status_code: int = 200, body=None):
        self.status_code = status_code
        self.body = body
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.body is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class TestStorageGatewayClient:

    @pytest.mark.asyncio
    async def test_change_storage_sends_signed_put(self, rsa_keys):
        private_key, public_key = rsa_keys
        recorder = Recorder()
        client = StorageGatewayClient(
            "https://gateway.test/", signing_key=private_key, transport=httpx.MockTransport(recorder)
        )

        await client.change_storage("uuid-1", 2000000000)
        await client.close()

        request = recorder.last
        assert request.method == "PUT"
        assert str(request.url) == "https://gateway.test/v2/gateway/storage/users/uuid-1"
        assert json.loads(request.content) == {"bytes": 2000000000}
        verify_gateway_token(request.headers["Authorization"], public_key)

    @pytest.mark.asyncio
    async def test_workspace_storage_is_per_seat(self, rsa_keys):
        recorder = Recorder()
        client = StorageGatewayClient(
            "https://gateway.test", signing_key=rsa_keys[0], transport=httpx.MockTransport(recorder)
        )

        await client.update_workspace_storage("owner-1", 1000, seats=4)

        assert json.loads(recorder.last.content) == {
            "ownerId": "owner-1", "maxSpaceBytes": 4000, "numberOfSeats": 4,
        }

    @pytest.mark.asyncio
    async def test_find_user_by_email(self, rsa_keys):
        recorder = Recorder(body={"uuid": "uuid-1", "email": "a@example.com"})
        client = StorageGatewayClient(
            "https://gateway.test", signing_key=rsa_keys[0], transport=httpx.MockTransport(recorder)
        )

        user = await client.find_user_by_email("a@example.com")

        assert user["uuid"] == "uuid-1"
        assert recorder.last.url.params["email"] == "a@example.com"

    @pytest.mark.asyncio
    async def test_unknown_email_returns_none(self, rsa_keys):
        client = StorageGatewayClient(
            "https://gateway.test", signing_key=rsa_keys[0], transport=httpx.MockTransport(Recorder(404))
        )

        assert await client.find_user_by_email("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_not_found_on_workspace_update(self, rsa_keys):
        client = StorageGatewayClient(
            "https://gateway.test", signing_key=rsa_keys[0], transport=httpx.MockTransport(Recorder(404))
        )

        with pytest.raises(GatewayNotFoundError):
            await client.update_workspace_storage("owner-1", 1000, seats=4)

    @pytest.mark.asyncio
    async def test_server_error_carries_status(self, rsa_keys):
        client = StorageGatewayClient(
            "https://gateway.test",
            signing_key=rsa_keys[0],
            transport=httpx.MockTransport(Recorder(503, body={"error": "maintenance"})),
        )

        with pytest.raises(GatewayError) as exc_info:
            await client.change_storage("uuid-1", 1)

        assert exc_info.value.status_code == 503
        assert exc_info.value.response == {"error": "maintenance"}

    @pytest.mark.asyncio
    async def test_network_error_is_a_connection_error(self, rsa_keys):
        def unreachable(request):
            raise httpx.ConnectError("refused", request=request)

        client = StorageGatewayClient(
            "https://gateway.test", signing_key=rsa_keys[0], transport=httpx.MockTransport(unreachable)
        )

        with pytest.raises(GatewayConnectionError):
            await client.notify_failed_payment("uuid-1")


class TestOtherGateways:

    @pytest.mark.asyncio
    async def test_legacy_drive_uses_basic_auth(self):
        recorder = Recorder()
        client = LegacyDriveGatewayClient(
            "https://drive.test", basic_auth=("user", "secret"), transport=httpx.MockTransport(recorder)
        )

        await client.create_or_update_user(1000, "a@example.com")

        assert recorder.last.headers["Authorization"].startswith("Basic ")
        assert json.loads(recorder.last.content) == {"maxSpaceBytes": "1000", "email": "a@example.com"}

    @pytest.mark.asyncio
    async def test_vpn_enable_and_disable(self, rsa_keys):
        recorder = Recorder()
        client = VpnGatewayClient(
            "https://vpn.test", signing_key=rsa_keys[0], transport=httpx.MockTransport(recorder)
        )

        await client.enable_vpn_tier("uuid-1", "vpn-feature")
        await client.disable_vpn_tier("uuid-1", "vpn-feature")

        enable, disable = recorder.requests
        assert json.loads(enable.content) == {"uuid": "uuid-1", "tierId": "vpn-feature"}
        assert disable.method == "DELETE"
        assert disable.url.path == "/gateway/users/uuid-1/tiers/vpn-feature"

    @pytest.mark.asyncio
    async def test_object_storage_conflict(self, rsa_keys):
        client = ObjectStorageClient(
            "https://s3.test", signing_key=rsa_keys[0], transport=httpx.MockTransport(Recorder(409))
        )

        with pytest.raises(GatewayConflictError):
            await client.init_object_storage_user("a@example.com", "cus_1")


class TestGatewayTokens:

    def test_rejects_missing_token(self, rsa_keys):
        with pytest.raises(TokenVerificationError) as exc_info:
            verify_gateway_token(None, rsa_keys[1])

        assert exc_info.value.error_code == "missing_token"

    def test_rejects_unconfigured_key(self):
        with pytest.raises(TokenVerificationError) as exc_info:
            verify_gateway_token("Bearer x", None)

        assert exc_info.value.error_code == "not_configured"

    def test_rejects_expired_token(self, rsa_keys):
        private_pem = base64.b64decode(rsa_keys[0]).decode()
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode({"iat": past, "exp": past + timedelta(minutes=5)}, private_pem, algorithm="RS256")

        with pytest.raises(TokenVerificationError) as exc_info:
            verify_gateway_token(f"Bearer {token}", rsa_keys[1])

        assert exc_info.value.error_code == "token_expired"

    def test_rejects_hs256_token(self, rsa_keys):
        token = jwt.encode({"sub": "x"}, "a-shared-secret-of-at-least-32-bytes", algorithm="HS256")

        with pytest.raises(TokenVerificationError) as exc_info:
            verify_gateway_token(f"Bearer {token}", rsa_keys[1])

        assert exc_info.value.error_code == "invalid_token"


class TestUserTokens:

    def test_uuid_claim(self):
        token = jwt.encode({"uuid": "uuid-1"}, USER_SECRET, algorithm="HS256")

        assert verify_user_token(f"Bearer {token}", USER_SECRET) == "uuid-1"

    def test_nested_payload_uuid(self):
        token = jwt.encode({"payload": {"uuid": "uuid-2"}}, USER_SECRET, algorithm="HS256")

        assert verify_user_token(token, USER_SECRET) == "uuid-2"

    def test_missing_uuid(self):
        token = jwt.encode({"email": "a@example.com"}, USER_SECRET, algorithm="HS256")

        with pytest.raises(TokenVerificationError) as exc_info:
            verify_user_token(f"Bearer {token}", USER_SECRET)

        assert exc_info.value.error_code == "missing_claims"

    def test_wrong_secret(self):
        token = jwt.encode({"uuid": "uuid-1"}, "another-secret-of-at-least-32-bytes", algorithm="HS256")

        with pytest.raises(TokenVerificationError):
            verify_user_token(f"Bearer {token}", USER_SECRET)
