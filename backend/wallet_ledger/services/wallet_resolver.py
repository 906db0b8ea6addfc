import logging
from typing import Iterable, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from wallet_ledger.chains import wallet_chain_for
from wallet_ledger.core.addresses import normalize_address, strip_non_hex, toggle_prefix
from wallet_ledger.models.wallet import Wallet

logger = logging.getLogger(__name__)


class WalletResolver:
    """Attribute an on-chain address to a locally known wallet.

    Matching needs normalization that a plain equality filter cannot express,
    so a capped page of wallets is scanned in Python. This only holds up while
    the wallets table is small; a larger deployment needs a normalized,
    indexed address column with this cascade kept as the fallback.
    """

    def __init__(self, db: AsyncSession, scan_limit: int = 50):
        self.db = db
        self.scan_limit = scan_limit

    async def _candidates(self) -> list[Wallet]:
        result = await self.db.scalars(select(Wallet).limit(self.scan_limit))
        return list(result)

    async def resolve(self, address: Optional[str], chain: str) -> Optional[Wallet]:
        """Match order: exact + same chain, prefix toggled, then hex-only fuzzy."""
        normalized = normalize_address(address)
        if normalized is None:
            logger.error("Attempted to find wallet with empty address")
            return None

        wallets = await self._candidates()
        target_chain = wallet_chain_for(chain)

        for wallet in wallets:
            if normalize_address(wallet.wallet_address) == normalized and wallet.blockchain == target_chain:
                return wallet

        toggled = toggle_prefix(normalized)
        match = _prefer_chain(
            (w for w in wallets if toggled and normalize_address(w.wallet_address) == toggled),
            target_chain,
        )
        if match:
            return match

        cleaned = strip_non_hex(normalized)
        match = _prefer_chain(
            (w for w in wallets if cleaned and strip_non_hex(w.wallet_address) == cleaned),
            target_chain,
        )
        if match:
            return match

        return None

    async def resolve_first(self, addresses: Iterable[Optional[str]], chain: str) -> Optional[Wallet]:
        """Resolve the first address in order that maps to a wallet."""
        tried = set()
        for address in addresses:
            normalized = normalize_address(address)
            if normalized is None or normalized in tried:
                continue
            tried.add(normalized)
            wallet = await self.resolve(address, chain)
            if wallet:
                return wallet
        return None


def _prefer_chain(matches: Iterable[Wallet], chain: str) -> Optional[Wallet]:
    first = None
    for wallet in matches:
        if wallet.blockchain == chain:
            return wallet
        if first is None:
            first = wallet
    return first
