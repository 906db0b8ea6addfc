"""On-demand lookup of a single transaction for the detail view.

Strategies run in order and the first hit wins:

1. the local ledger,
2. Circle transfer lookup by id,
3. Circle transfer search by tx hash (hash-shaped ids only),
4. Circle transaction receipt (hash-shaped ids only; no amount).

Remote hits are copied into the ledger when their wallet is known locally.
That copy is a cache: failing to write it never fails the lookup.
"""
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional
import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from wallet_ledger.chains import LEDGER_NETWORK_TO_BLOCKCHAIN, NETWORK_NAMES, NETWORK_TO_BLOCKCHAIN
from wallet_ledger.models.transaction import Transaction
from wallet_ledger.services.circle_client import CircleAPIError, CircleClient
from wallet_ledger.services.wallet_resolver import WalletResolver

logger = logging.getLogger(__name__)

TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")

UPSTREAM_ERRORS = (CircleAPIError, httpx.HTTPError)


def is_transaction_hash(value: str) -> bool:
    return bool(TX_HASH_RE.match(value or ""))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_decimal(amount) -> Decimal:
    try:
        return Decimal(str(amount or "0"))
    except InvalidOperation:
        return Decimal("0")


def format_local_transaction(tx: Transaction, network_id: int) -> dict:
    row_network = tx.network_id or network_id
    network_name = tx.network_name or NETWORK_NAMES.get(network_id)
    created = tx.created_at.isoformat() if tx.created_at else _now()
    wallet_address = tx.wallet.wallet_address if tx.wallet else ""
    return {
        "id": tx.id,
        "amounts": [str(tx.amount if tx.amount is not None else "0")],
        "state": (tx.status or "unknown").lower(),
        "createDate": created,
        "blockchain": LEDGER_NETWORK_TO_BLOCKCHAIN.get(row_network) or NETWORK_TO_BLOCKCHAIN.get(network_id),
        "transactionType": (tx.transaction_type or "transfer").lower(),
        "updateDate": created,
        "description": tx.description or f"{tx.transaction_type or 'Transfer'} on {network_name}",
        "networkId": row_network,
        "networkName": network_name,
        "from": wallet_address or "Unknown",
        # Counterparty and gas are not stored locally
        "to": "Unknown",
        "gasUsed": "N/A",
        "gasPrice": "N/A",
        "txHash": tx.circle_transaction_id or "",
        "walletId": tx.wallet_id or "",
        "walletAddress": wallet_address,
        "tokenAddress": tx.circle_contract_address or "",
    }


def format_transfer(transfer: dict, network_id: int) -> dict:
    network_name = NETWORK_NAMES.get(network_id)
    transfer_type = transfer.get("transferType") or "transfer"
    return {
        "id": transfer.get("id"),
        "amounts": [transfer.get("amount") or "0"],
        "state": (transfer.get("state") or "unknown").lower(),
        "createDate": transfer.get("createDate") or _now(),
        "blockchain": transfer.get("blockchain") or NETWORK_TO_BLOCKCHAIN.get(network_id),
        "transactionType": transfer_type.lower(),
        "updateDate": transfer.get("updateDate") or _now(),
        "description": f"{transfer.get('transferType') or 'Transfer'} on {transfer.get('blockchain') or network_name}",
        "networkId": network_id,
        "networkName": network_name,
        "from": transfer.get("from") or transfer.get("fromAddress") or "Unknown",
        "to": transfer.get("to") or transfer.get("toAddress") or "Unknown",
        "gasUsed": "N/A",
        "gasPrice": "N/A",
        "txHash": transfer.get("txHash") or "",
        "walletId": transfer.get("walletId") or "",
        "walletAddress": transfer.get("walletAddress") or "",
        "tokenAddress": transfer.get("tokenAddress") or "",
    }


def format_receipt(receipt: dict, tx_hash: str, network_id: int) -> dict:
    network_name = NETWORK_NAMES.get(network_id)
    now = _now()
    return {
        "id": receipt.get("transactionHash") or tx_hash,
        "amounts": ["0"],
        "state": "confirmed" if receipt.get("status") == "0x1" else "failed",
        "createDate": now,
        "blockchain": NETWORK_TO_BLOCKCHAIN.get(network_id),
        "transactionType": "contract_interaction",
        "updateDate": now,
        "description": f"Transaction on {network_name}",
        "networkId": network_id,
        "networkName": network_name,
        "from": receipt.get("from") or "Unknown",
        "to": receipt.get("to") or "Unknown",
        "gasUsed": receipt.get("gasUsed") or "N/A",
        "gasPrice": receipt.get("effectiveGasPrice") or "N/A",
        "txHash": receipt.get("transactionHash") or tx_hash,
        "walletId": "",
        "walletAddress": "",
        "tokenAddress": "",
    }


class TransactionFetcher:
    def __init__(self, db: AsyncSession, circle: CircleClient, resolver: WalletResolver):
        self.db = db
        self.circle = circle
        self.resolver = resolver

    async def fetch(self, transaction_id: str, network_id: int) -> Optional[dict]:
        """Normalized transaction for an id or tx hash, or None when every strategy misses."""
        local = await self._from_ledger(transaction_id, network_id)
        if local:
            return local

        transfer = await self._remote_transfer(transaction_id)
        if transfer:
            await self._backfill_transfer(transfer, network_id)
            return format_transfer(transfer, network_id)

        if not is_transaction_hash(transaction_id):
            return None

        transfer = await self._remote_transfer_by_hash(transaction_id)
        if transfer:
            await self._backfill_transfer(transfer, network_id)
            return format_transfer(transfer, network_id)

        receipt = await self._remote_receipt(transaction_id, network_id)
        if receipt:
            await self._backfill_receipt(receipt, transaction_id, network_id)
            return format_receipt(receipt, transaction_id, network_id)

        return None

    async def _from_ledger(self, transaction_id: str, network_id: int) -> Optional[dict]:
        if transaction_id.startswith("0x"):
            condition = Transaction.circle_transaction_id == transaction_id
        else:
            condition = Transaction.id == transaction_id
        try:
            tx = await self.db.scalar(
                select(Transaction).options(selectinload(Transaction.wallet)).where(condition).limit(1)
            )
        except SQLAlchemyError as exc:
            logger.error("Database error looking up transaction %s: %s", transaction_id, exc)
            return None
        return format_local_transaction(tx, network_id) if tx else None

    async def _remote_transfer(self, transaction_id: str) -> Optional[dict]:
        try:
            return await self.circle.get_transfer(transaction_id)
        except UPSTREAM_ERRORS as exc:
            logger.warning("Circle transfer lookup failed for %s: %s", transaction_id, exc)
            return None

    async def _remote_transfer_by_hash(self, tx_hash: str) -> Optional[dict]:
        try:
            transfers = await self.circle.find_transfers_by_hash(tx_hash)
        except UPSTREAM_ERRORS as exc:
            logger.warning("Circle transfer search failed for %s: %s", tx_hash, exc)
            return None
        return transfers[0] if transfers else None

    async def _remote_receipt(self, tx_hash: str, network_id: int) -> Optional[dict]:
        try:
            return await self.circle.get_transaction_receipt(NETWORK_TO_BLOCKCHAIN[network_id], tx_hash)
        except UPSTREAM_ERRORS as exc:
            logger.warning("Circle receipt lookup failed for %s: %s", tx_hash, exc)
            return None

    async def _store(self, address: Optional[str], network_id: int, **fields):
        if not fields.get("id"):
            return
        chain = NETWORK_TO_BLOCKCHAIN.get(network_id, "")
        try:
            wallet = await self.resolver.resolve(address, chain) if address else None
            if not wallet:
                logger.warning("Could not find wallet for transaction, not storing in database")
                return
            if await self.db.get(Transaction, fields["id"]):
                return
            self.db.add(Transaction(
                wallet_id=wallet.id,
                profile_id=wallet.profile_id,
                network_id=network_id,
                network_name=NETWORK_NAMES.get(network_id),
                **fields,
            ))
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.warning("Error inserting transaction %s to database: %s", fields.get("id"), exc)

    async def _backfill_transfer(self, transfer: dict, network_id: int):
        transfer_type = transfer.get("transferType") or "transfer"
        await self._store(
            transfer.get("walletAddress") or transfer.get("from") or transfer.get("fromAddress"),
            network_id,
            id=transfer.get("id"),
            transaction_type=transfer_type,
            amount=_to_decimal(transfer.get("amount")),
            currency="USDC",
            status=transfer.get("state") or "unknown",
            circle_transaction_id=transfer.get("txHash") or transfer.get("id"),
            description=f"{transfer_type} on {transfer.get('blockchain') or NETWORK_NAMES.get(network_id)}",
            circle_contract_address=transfer.get("tokenAddress") or "",
        )

    async def _backfill_receipt(self, receipt: dict, tx_hash: str, network_id: int):
        status = "confirmed" if receipt.get("status") == "0x1" else "failed"
        await self._store(
            receipt.get("from"),
            network_id,
            id=receipt.get("transactionHash") or tx_hash,
            transaction_type="contract_interaction",
            amount=Decimal("0"),
            currency="UNKNOWN",
            status=status,
            circle_transaction_id=receipt.get("transactionHash") or tx_hash,
            description=f"Transaction on {NETWORK_NAMES.get(network_id)}",
        )
