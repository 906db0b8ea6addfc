"""Merge Circle webhook notifications into the local ledger and balance cache.

Each notification moves through

    received -> authenticated -> attributed -> persisted
             -> balance_refresh_triggered -> done

and may leave early as `dropped` (unknown type, non-terminal state, no
wallet to attribute it to). Signature checking happens in the route, so
events reach `handle()` already authenticated.
"""
import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional
from pydantic import ValidationError
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from wallet_ledger.chains import chain_type_for, ledger_network_for
from wallet_ledger.core.addresses import addresses_match
from wallet_ledger.models.transaction import Transaction, TransactionType
from wallet_ledger.models.wallet import Wallet
from wallet_ledger.schemas.notifications import (
    KNOWN_NOTIFICATION_TYPES,
    INBOUND_TRANSFER,
    BaseNotification,
    InboundTransferEvent,
    OutboundTransferEvent,
    TransfersEvent,
    TransfersNotification,
    UserOperationEvent,
    webhook_event_adapter,
)
from wallet_ledger.services.balance_sync import BalanceSyncClient
from wallet_ledger.services.wallet_resolver import WalletResolver

logger = logging.getLogger(__name__)


class ReconcileState(str, enum.Enum):
    received = "received"
    authenticated = "authenticated"
    attributed = "attributed"
    persisted = "persisted"
    balance_refresh_triggered = "balance_refresh_triggered"
    done = "done"
    dropped = "dropped"


@dataclass
class ReconcileResult:
    notification_type: Optional[str]
    state: ReconcileState = ReconcileState.received
    reason: Optional[str] = None
    transaction_id: Optional[str] = None
    history: list[ReconcileState] = field(default_factory=list)

    def advance(self, state: ReconcileState):
        self.history.append(state)
        self.state = state

    def drop(self, reason: str) -> "ReconcileResult":
        self.advance(ReconcileState.dropped)
        self.reason = reason
        logger.info("Dropped %s notification: %s", self.notification_type, reason)
        return self


def _to_decimal(amount: Optional[str]) -> Decimal:
    try:
        return Decimal(amount or "0")
    except InvalidOperation:
        logger.warning("Unparseable notification amount %r, recording 0", amount)
        return Decimal("0")


class TransactionReconciler:
    def __init__(self, db: AsyncSession, resolver: WalletResolver, balances: BalanceSyncClient):
        self.db = db
        self.resolver = resolver
        self.balances = balances

    async def handle(self, payload: dict) -> ReconcileResult:
        """Reconcile one authenticated webhook body.

        Never raises: failures are logged, rolled back and reported as a
        dropped result so the caller can still acknowledge the delivery.
        """
        notification_type = payload.get("notificationType") if isinstance(payload, dict) else None
        result = ReconcileResult(notification_type=notification_type)
        result.advance(ReconcileState.received)
        result.advance(ReconcileState.authenticated)

        if notification_type not in KNOWN_NOTIFICATION_TYPES:
            return result.drop("unrecognized notification type")

        try:
            event = webhook_event_adapter.validate_python(payload)
        except ValidationError as exc:
            logger.error("Malformed %s notification: %s", notification_type, exc)
            return result.drop("malformed notification")

        try:
            if isinstance(event, TransfersEvent):
                await self._handle_transfers(event, result)
            elif isinstance(event, UserOperationEvent):
                await self._handle_user_operation(event, result)
            elif isinstance(event, (InboundTransferEvent, OutboundTransferEvent)):
                await self._handle_modular_transfer(event, result)
        except Exception as exc:
            logger.exception("Error processing %s notification: %s", notification_type, exc)
            await self.db.rollback()
            return result.drop("processing error")

        if result.state != ReconcileState.dropped:
            result.advance(ReconcileState.done)
        return result

    async def _handle_transfers(self, event: TransfersEvent, result: ReconcileResult):
        notification = event.notification
        chain = chain_type_for(notification.blockchain)

        if not notification.id:
            result.drop("transfers notification without id")
            return

        matches = [Transaction.id == notification.id, Transaction.circle_transaction_id == notification.id]
        if notification.tx_hash:
            matches.append(Transaction.circle_transaction_id == notification.tx_hash)
        rows = list(await self.db.scalars(select(Transaction).where(or_(*matches))))

        if rows:
            result.advance(ReconcileState.attributed)
            if _apply_transfer_update(rows, notification):
                await self.db.commit()
            result.transaction_id = rows[0].id
            result.advance(ReconcileState.persisted)
            wallet = await self.db.get(Wallet, rows[0].wallet_id)
        else:
            wallet = await self.resolver.resolve_first(
                [notification.wallet_address, notification.destination_address, notification.source_address],
                chain,
            )
            if wallet:
                result.advance(ReconcileState.attributed)
                tx = await self._insert_transfer(wallet, notification)
                if tx is not None:
                    result.transaction_id = tx.id
                    result.advance(ReconcileState.persisted)
            else:
                logger.warning("No local wallet for transfer %s", notification.id)

        # Refresh the wallet the row belongs to, whichever address attributed it
        if notification.is_terminal and wallet is not None:
            await self._refresh_balance(wallet, result)

        if result.state == ReconcileState.authenticated:
            result.drop("no ledger row or wallet for transfer")

    async def _insert_transfer(self, wallet: Wallet, notification: TransfersNotification) -> Optional[Transaction]:
        if notification.transaction_type:
            outbound = notification.transaction_type.upper() == "OUTBOUND"
        else:
            outbound = addresses_match(wallet.wallet_address, notification.source_address, fuzzy=True)
        transaction_type = TransactionType.USDC_TRANSFER_OUT if outbound else TransactionType.USDC_TRANSFER_IN
        network_id, network_name = ledger_network_for(notification.blockchain)
        correlation_id = notification.tx_hash or notification.id

        tx = Transaction(
            id=notification.id,
            wallet_id=wallet.id,
            profile_id=wallet.profile_id,
            transaction_type=transaction_type,
            amount=_to_decimal(notification.value),
            currency="USDC",
            status=notification.state,
            circle_transaction_id=correlation_id,
            network_id=network_id,
            network_name=network_name,
            circle_contract_address=notification.token_address,
            description=_describe(transaction_type, network_name),
        )
        self.db.add(tx)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent delivery inserted it first
            await self.db.rollback()
            await self.db.refresh(wallet)
            existing = await self.db.scalar(
                select(Transaction).where(
                    or_(
                        Transaction.id == notification.id,
                        and_(
                            Transaction.wallet_id == wallet.id,
                            Transaction.circle_transaction_id == correlation_id,
                        ),
                    )
                ).limit(1)
            )
            if existing and existing.status != notification.state:
                existing.status = notification.state
                await self.db.commit()
            return existing
        return tx

    async def _handle_user_operation(self, event: UserOperationEvent, result: ReconcileResult):
        notification = event.notification
        if not notification.is_terminal:
            result.drop(f"user operation in non-terminal state {notification.state}")
            return

        chain = chain_type_for(notification.blockchain)
        wallet = await self.resolver.resolve(notification.sender, chain)
        if not wallet:
            # Not retried or queued: an operation whose sender is unknown is lost
            logger.error("Could not find a wallet for userOperation sender: %s", notification.sender)
            result.drop("sender wallet not found")
            return
        result.advance(ReconcileState.attributed)

        # User operations are treated as outgoing payments
        tx = await self.process_transaction(wallet, TransactionType.USDC_TRANSFER_OUT, notification)
        if tx is None:
            result.drop("missing txHash")
            return
        result.transaction_id = tx.id
        result.advance(ReconcileState.persisted)
        await self._refresh_balance(wallet, result)

    async def _handle_modular_transfer(self, event, result: ReconcileResult):
        notification = event.notification
        if not notification.is_terminal:
            result.drop(f"transfer in non-terminal state {notification.state}")
            return

        inbound = event.notification_type == INBOUND_TRANSFER
        transaction_type = TransactionType.USDC_TRANSFER_IN if inbound else TransactionType.USDC_TRANSFER_OUT
        relevant = notification.wallet_address or (notification.to if inbound else notification.from_)
        if not relevant:
            logger.error("No valid address found in notification for %s", transaction_type)
            result.drop("no address in notification")
            return

        chain = chain_type_for(notification.blockchain)
        fallbacks = [notification.from_ if inbound else notification.to, notification.wallet_address]
        wallet = await self.resolver.resolve_first([relevant, *fallbacks], chain)
        if not wallet:
            logger.error("Could not find a wallet for address: %s or any fallbacks", relevant)
            result.drop("wallet not found")
            return
        result.advance(ReconcileState.attributed)

        tx = await self.process_transaction(wallet, transaction_type, notification)
        if tx is None:
            result.drop("missing txHash")
            return
        result.transaction_id = tx.id
        result.advance(ReconcileState.persisted)
        await self._refresh_balance(wallet, result)

    async def process_transaction(
        self,
        wallet: Wallet,
        transaction_type: str,
        notification: BaseNotification,
    ) -> Optional[Transaction]:
        """Insert the wallet's ledger row for this txHash, or update its status."""
        if not notification.tx_hash:
            logger.error("Missing txHash in notification")
            return None

        existing = await self.db.scalar(
            select(Transaction).where(
                Transaction.wallet_id == wallet.id,
                Transaction.circle_transaction_id == notification.tx_hash,
            )
        )
        if existing:
            if existing.status != notification.state:
                existing.status = notification.state
                await self.db.commit()
            return existing

        network_id, network_name = ledger_network_for(notification.blockchain)
        tx = Transaction(
            wallet_id=wallet.id,
            profile_id=wallet.profile_id,
            transaction_type=transaction_type,
            amount=_to_decimal(notification.value),
            currency="USDC",
            status=notification.state,
            circle_transaction_id=notification.tx_hash,
            network_id=network_id,
            network_name=network_name,
            circle_contract_address=notification.token_address,
            description=_describe(transaction_type, network_name),
        )
        self.db.add(tx)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            # rollback expires every loaded instance, the wallet included
            await self.db.refresh(wallet)
            existing = await self.db.scalar(
                select(Transaction).where(
                    Transaction.wallet_id == wallet.id,
                    Transaction.circle_transaction_id == notification.tx_hash,
                )
            )
            if existing and existing.status != notification.state:
                existing.status = notification.state
                await self.db.commit()
            return existing
        return tx

    async def _refresh_balance(self, wallet: Optional[Wallet], result: ReconcileResult):
        if wallet is None:
            logger.warning("Skipping balance refresh: no local wallet")
            return
        try:
            await self.balances.refresh(wallet.wallet_address, wallet.blockchain)
        except (SQLAlchemyError, ValueError) as exc:
            logger.error("Failed to update wallet balance for %s: %s", wallet.wallet_address, exc)
            return
        result.advance(ReconcileState.balance_refresh_triggered)


def _describe(transaction_type: str, network_name: str) -> str:
    verb = "Received" if transaction_type == TransactionType.USDC_TRANSFER_IN else "Sent"
    return f"{verb} USDC via {network_name or 'blockchain'}"


def _apply_transfer_update(rows: list[Transaction], notification: TransfersNotification) -> bool:
    """Bring existing ledger rows up to date with a transfers notification.

    Rows recorded before the txHash was known carry the transfer id as their
    correlation id; once the hash arrives it replaces the placeholder so later
    hash-keyed notifications and lookups find the same row.
    """
    changed = False
    taken = {(tx.wallet_id, tx.circle_transaction_id) for tx in rows}
    for tx in rows:
        if tx.status != notification.state:
            tx.status = notification.state
            changed = True
        tx_hash = notification.tx_hash
        placeholder = tx.circle_transaction_id in (tx.id, notification.id)
        if tx_hash and placeholder and (tx.wallet_id, tx_hash) not in taken:
            tx.circle_transaction_id = tx_hash
            taken.add((tx.wallet_id, tx_hash))
            changed = True
    return changed
