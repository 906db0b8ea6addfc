import logging
from typing import Awaitable, Callable, TypeVar
import httpx
from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from wallet_ledger.chains import alternate_blockchain, circle_blockchain_for, wallet_chain_for
from wallet_ledger.models.wallet import Wallet
from wallet_ledger.services.circle_client import CircleAPIError, CircleClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that make a balance fetch worth retrying on the other chain
BALANCE_FETCH_ERRORS = (CircleAPIError, httpx.HTTPError)


async def alternate_chain_retry(
    fetch: Callable[[str], Awaitable[T]],
    blockchain: str,
) -> T:
    """Call fetch(blockchain); on failure call it once more on the alternate chain.

    Wallets are occasionally recorded against the wrong network, so the other
    chain is the one retry worth making. The retry's error propagates.
    """
    try:
        return await fetch(blockchain)
    except BALANCE_FETCH_ERRORS as exc:
        alternate = alternate_blockchain(blockchain)
        logger.warning("Balance fetch on %s failed (%s), retrying on %s", blockchain, exc, alternate)
        return await fetch(alternate)


def usdc_amount(token_balances: list[dict]) -> str:
    for entry in token_balances:
        if (entry.get("token") or {}).get("symbol") == "USDC":
            return entry.get("amount") or "0"
    return "0"


class BalanceSyncClient:
    """Fetch the authoritative USDC balance from Circle and cache it on the wallet row."""

    def __init__(self, circle: CircleClient, db: AsyncSession):
        self.circle = circle
        self.db = db

    async def _fetch_usdc(self, blockchain: str, wallet_address: str) -> str:
        balances = await self.circle.get_wallet_balances(blockchain, wallet_address)
        return usdc_amount(balances)

    async def refresh(self, wallet_address: str, chain: str) -> str:
        """Return the wallet's USDC balance as a decimal string, "0" when unknown."""
        blockchain = circle_blockchain_for(chain)
        try:
            balance = await alternate_chain_retry(
                lambda bc: self._fetch_usdc(bc, wallet_address), blockchain
            )
        except BALANCE_FETCH_ERRORS as exc:
            logger.error("Balance fetch failed on both chains for %s: %s", wallet_address, exc)
            return "0"

        await self._write_back(wallet_address, chain, balance)
        return balance

    async def _write_back(self, wallet_address: str, chain: str, balance: str):
        try:
            await self.db.execute(
                update(Wallet)
                .where(
                    func.lower(Wallet.circle_wallet_id) == wallet_address.lower(),
                    Wallet.blockchain == wallet_chain_for(chain),
                )
                .values(balance=balance)
            )
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Failed to cache balance for %s: %s", wallet_address, exc)
