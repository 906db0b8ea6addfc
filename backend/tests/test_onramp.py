import pytest
from unittest.mock import AsyncMock, MagicMock
from jose import jwt
from wallet_ledger.core.deps import get_onramp_client
from wallet_ledger.main import app
from wallet_ledger.models.profile import Profile
from wallet_ledger.services.onramp import StripeOnrampClient

USER_ID = "5f1c1b7e-0000-4000-8000-0000000000aa"
WALLET = "0x" + "78" * 20


def auth_headers(sub=USER_ID):
    token = jwt.encode({"sub": sub, "aud": "authenticated"}, "test-jwt-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def onramp():
    mock_onramp = MagicMock()
    mock_onramp.create_session = AsyncMock(return_value="cos_secret_123")
    app.dependency_overrides[get_onramp_client] = lambda: mock_onramp
    return mock_onramp


@pytest.fixture
def profile_with_wallets(db_session, make_wallet):
    async def _make():
        profile = Profile(auth_user_id=USER_ID, email="user@example.com")
        db_session.add(profile)
        await db_session.commit()
        await make_wallet(WALLET, "POLYGON", profile_id=profile.id)
        await make_wallet(WALLET, "BASE", profile_id=profile.id)
        return profile
    return _make


@pytest.mark.asyncio
async def test_session_defaults_to_polygon_wallet(client, onramp, profile_with_wallets):
    await profile_with_wallets()

    r = await client.post("/api/stripe/onramp", json={}, headers=auth_headers())

    assert r.status_code == 200
    assert r.json() == {"clientSecret": "cos_secret_123"}
    onramp.create_session.assert_awaited_once_with(WALLET, None)


@pytest.mark.asyncio
async def test_session_for_requested_chain(client, onramp, profile_with_wallets):
    await profile_with_wallets()

    r = await client.post("/api/stripe/onramp", json={"chain": "base"}, headers=auth_headers())

    assert r.status_code == 200
    onramp.create_session.assert_awaited_once_with(WALLET, "base")


@pytest.mark.asyncio
async def test_requires_session(client, onramp):
    r = await client.post("/api/stripe/onramp", json={})
    assert r.status_code == 401
    assert r.json() == {"error": "Not authenticated"}
    onramp.create_session.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_profile_is_server_error(client, onramp):
    r = await client.post("/api/stripe/onramp", json={}, headers=auth_headers())
    assert r.status_code == 500


@pytest.mark.asyncio
async def test_missing_wallet_not_found(client, db_session, onramp):
    db_session.add(Profile(auth_user_id=USER_ID, email="user@example.com"))
    await db_session.commit()

    r = await client.post("/api/stripe/onramp", json={"chain": "base"}, headers=auth_headers())

    assert r.status_code == 404
    assert r.json() == {"error": "Wallet not found"}


@pytest.mark.asyncio
async def test_stripe_failure_is_server_error(client, onramp, profile_with_wallets):
    await profile_with_wallets()
    onramp.create_session = AsyncMock(side_effect=RuntimeError("stripe down"))

    r = await client.post("/api/stripe/onramp", json={}, headers=auth_headers())

    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error while requesting Stripe onramp url"}


@pytest.mark.asyncio
async def test_unconfigured_stripe_is_server_error(client, profile_with_wallets):
    await profile_with_wallets()
    app.dependency_overrides[get_onramp_client] = lambda: None

    r = await client.post("/api/stripe/onramp", json={}, headers=auth_headers())

    assert r.status_code == 500


@pytest.mark.asyncio
async def test_create_session_request_shape():
    stripe_client = MagicMock()
    stripe_client.raw_request_async = AsyncMock(return_value=MagicMock(data={"client_secret": "cos_1"}))
    onramp = StripeOnrampClient("sk_test_123", default_amount="25", client=stripe_client)

    secret = await onramp.create_session(WALLET, "polygon")

    assert secret == "cos_1"
    method, path = stripe_client.raw_request_async.await_args.args
    assert (method, path) == ("post", "/v1/crypto/onramp_sessions")
    details = stripe_client.raw_request_async.await_args.kwargs["transaction_details"]
    assert details == {
        "wallet_address": WALLET,
        "destination_currency": "usdc",
        "destination_exchange_amount": "25",
        "supported_destination_networks": ["base", "polygon"],
        "destination_network": "polygon",
    }
