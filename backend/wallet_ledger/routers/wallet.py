import logging
import httpx
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from wallet_ledger.chains import NETWORK_NAMES, NETWORK_TO_BLOCKCHAIN, POLYGON_AMOY_ID
from wallet_ledger.core.deps import get_balance_sync, get_circle_client, get_transaction_fetcher
from wallet_ledger.database import get_db
from wallet_ledger.models.wallet import Wallet
from wallet_ledger.schemas.wallet import BalanceRequest, TransactionListRequest
from wallet_ledger.services.balance_sync import BalanceSyncClient
from wallet_ledger.services.circle_client import CircleAPIError, CircleClient
from wallet_ledger.services.transaction_lookup import TransactionFetcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


@router.post("/balance")
async def get_balance(
    body: BalanceRequest,
    db: AsyncSession = Depends(get_db),
    balances: BalanceSyncClient = Depends(get_balance_sync),
):
    """Current USDC balance from Circle, written through to the wallet row.

    An unreachable Circle resolves to "0" rather than an error.
    """
    wallet = await db.scalar(
        select(Wallet).where(
            func.lower(Wallet.wallet_address) == body.walletId.lower(),
            Wallet.blockchain == body.blockchain.upper(),
        ).limit(1)
    )
    if not wallet:
        return JSONResponse({"error": "Wallet not found in database"}, status_code=404)
    if not wallet.wallet_address:
        return JSONResponse({"error": "Wallet address not found in database record"}, status_code=400)

    balance = await balances.refresh(wallet.wallet_address, wallet.blockchain)
    return {"balance": balance}


@router.post("/transactions")
async def list_transactions(
    body: TransactionListRequest,
    circle: CircleClient = Depends(get_circle_client),
):
    """Page of Circle transfers for a wallet, shaped for the history list."""
    blockchain = NETWORK_TO_BLOCKCHAIN.get(body.networkId)
    if not blockchain:
        return JSONResponse({"error": f"Unsupported network ID: {body.networkId}"}, status_code=400)

    params = {
        "walletAddresses": body.walletId,
        "blockchain": blockchain,
        "pageSize": str(body.pageSize),
    }
    optional = {"pageAfter": body.pageAfter, "pageBefore": body.pageBefore, "from": body.from_, "to": body.to}
    params.update({k: v for k, v in optional.items() if v})

    try:
        data = await circle.list_transfers(params)
    except CircleAPIError as exc:
        logger.error("Circle API error listing transfers: %s", exc)
        return JSONResponse({"error": f"Failed to fetch transfers: {exc.message}"}, status_code=exc.status_code)
    except httpx.HTTPError as exc:
        logger.error("Circle API unreachable listing transfers: %s", exc)
        return JSONResponse({"error": "Failed to fetch transfers"}, status_code=502)

    wallet_id = body.walletId.lower()
    transactions = []
    for transfer in data.get("transfers") or []:
        from_address = transfer.get("fromAddress") or transfer.get("from")
        to_address = transfer.get("toAddress") or transfer.get("to")
        sent = bool(from_address) and from_address.lower() == wallet_id
        transactions.append({
            "hash": transfer.get("txHash"),
            "from": from_address,
            "to": to_address,
            "amount": transfer.get("amount"),
            "timestamp": transfer.get("createDate"),
            "networkId": body.networkId,
            "networkName": NETWORK_NAMES[body.networkId],
            "state": transfer.get("state"),
            "transactionType": "sent" if sent else "received",
            "tokenId": transfer.get("tokenId"),
            "transferType": transfer.get("transferType"),
            "userOpHash": transfer.get("userOpHash"),
            "updateDate": transfer.get("updateDate"),
            "id": transfer.get("id"),
        })

    return {
        "transactions": transactions,
        "pagination": {
            "hasMore": data.get("hasMore", False),
            "pageAfter": data.get("pageAfter"),
            "pageBefore": data.get("pageBefore"),
        },
    }


@router.get("/transactions/{transaction_id}")
async def get_transaction(
    transaction_id: str,
    networkId: int = Query(default=POLYGON_AMOY_ID),
    fetcher: TransactionFetcher = Depends(get_transaction_fetcher),
):
    if networkId not in NETWORK_TO_BLOCKCHAIN:
        return JSONResponse({"error": f"Unsupported network ID: {networkId}"}, status_code=400)

    transaction = await fetcher.fetch(transaction_id, networkId)
    if not transaction:
        return JSONResponse({"error": "Transaction not found"}, status_code=404)
    return {"transaction": transaction}
