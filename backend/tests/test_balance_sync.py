import httpx
import pytest
from unittest.mock import AsyncMock
from wallet_ledger.models.wallet import Wallet
from wallet_ledger.services.balance_sync import BalanceSyncClient, alternate_chain_retry, usdc_amount
from wallet_ledger.services.circle_client import CircleAPIError

ADDR = "0xAbCdEf1234567890aBcDeF1234567890AbCdEf12"


@pytest.mark.asyncio
async def test_alternate_chain_retry_first_attempt_succeeds():
    fetch = AsyncMock(return_value="1")
    assert await alternate_chain_retry(fetch, "MATIC-AMOY") == "1"
    fetch.assert_awaited_once_with("MATIC-AMOY")


@pytest.mark.asyncio
async def test_alternate_chain_retry_retries_once_on_other_chain():
    fetch = AsyncMock(side_effect=[CircleAPIError(404, "not found"), "7"])
    assert await alternate_chain_retry(fetch, "MATIC-AMOY") == "7"
    assert [c.args[0] for c in fetch.await_args_list] == ["MATIC-AMOY", "BASE-SEPOLIA"]


@pytest.mark.asyncio
async def test_alternate_chain_retry_never_retries_twice():
    fetch = AsyncMock(side_effect=httpx.ConnectError("down"))
    with pytest.raises(httpx.ConnectError):
        await alternate_chain_retry(fetch, "BASE-SEPOLIA")
    assert fetch.await_count == 2


def test_usdc_amount_missing_token_is_zero():
    assert usdc_amount([]) == "0"
    assert usdc_amount([{"token": {"symbol": "ETH"}, "amount": "3"}]) == "0"
    assert usdc_amount([{"token": {"symbol": "USDC"}, "amount": "12.5"}]) == "12.5"


@pytest.mark.asyncio
async def test_refresh_writes_balance_through(db_session, make_wallet, circle):
    wallet = await make_wallet(ADDR, "POLYGON", circle_wallet_id=ADDR.lower())
    sync = BalanceSyncClient(circle, db_session)

    assert await sync.refresh(ADDR, "polygon") == "25.5"
    circle.get_wallet_balances.assert_awaited_once_with("MATIC-AMOY", ADDR)

    await db_session.refresh(wallet)
    assert wallet.balance == "25.5"


@pytest.mark.asyncio
async def test_refresh_only_touches_matching_chain(db_session, make_wallet, circle):
    polygon = await make_wallet(ADDR, "POLYGON")
    base = await make_wallet(ADDR, "BASE", balance="3")
    sync = BalanceSyncClient(circle, db_session)

    await sync.refresh(ADDR, "polygon")
    await db_session.refresh(polygon)
    await db_session.refresh(base)
    assert polygon.balance == "25.5"
    assert base.balance == "3"


@pytest.mark.asyncio
async def test_refresh_retry_on_alternate_chain(db_session, make_wallet, circle):
    await make_wallet(ADDR, "BASE")
    circle.get_wallet_balances = AsyncMock(side_effect=[
        CircleAPIError(500, "boom"),
        [{"token": {"symbol": "USDC"}, "amount": "4"}],
    ])
    sync = BalanceSyncClient(circle, db_session)

    assert await sync.refresh(ADDR, "base") == "4"
    assert [c.args[0] for c in circle.get_wallet_balances.await_args_list] == ["BASE-SEPOLIA", "MATIC-AMOY"]


@pytest.mark.asyncio
async def test_refresh_both_chains_fail_returns_zero_without_write(db_session, make_wallet, circle):
    wallet = await make_wallet(ADDR, "POLYGON", balance="9")
    circle.get_wallet_balances = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
    sync = BalanceSyncClient(circle, db_session)

    assert await sync.refresh(ADDR, "polygon") == "0"
    assert circle.get_wallet_balances.await_count == 2
    await db_session.refresh(wallet)
    assert wallet.balance == "9"


@pytest.mark.asyncio
async def test_refresh_unknown_chain_defaults_to_polygon(db_session, circle):
    sync = BalanceSyncClient(circle, db_session)
    await sync.refresh(ADDR, "arbitrum")
    circle.get_wallet_balances.assert_awaited_once_with("MATIC-AMOY", ADDR)
