from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from wallet_ledger.config import settings
from wallet_ledger.core.security import decode_token
from wallet_ledger.database import get_db
from wallet_ledger.models.profile import Profile
from wallet_ledger.services.balance_sync import BalanceSyncClient
from wallet_ledger.services.circle_client import CircleClient
from wallet_ledger.services.onramp import StripeOnrampClient
from wallet_ledger.services.reconciler import TransactionReconciler
from wallet_ledger.services.signature_verifier import SignatureVerifier
from wallet_ledger.services.transaction_lookup import TransactionFetcher
from wallet_ledger.services.wallet_resolver import WalletResolver

bearer = HTTPBearer(auto_error=False)


async def get_auth_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Optional[dict]:
    if not credentials:
        return None
    return decode_token(credentials.credentials)


async def get_current_profile(
    claims: Optional[dict] = Depends(get_auth_claims),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    if not claims:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unauthorized - No valid session")
    profile = await db.scalar(select(Profile).where(Profile.auth_user_id == claims["sub"]))
    if not profile:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Profile not found for user")
    return profile


def get_circle_client(request: Request) -> CircleClient:
    return request.app.state.circle


def get_signature_verifier(
    request: Request,
    circle: CircleClient = Depends(get_circle_client),
) -> SignatureVerifier:
    redis = getattr(request.app.state, "redis", None)
    return SignatureVerifier(circle, redis=redis, cache_ttl=settings.PUBLIC_KEY_CACHE_TTL)


def get_wallet_resolver(db: AsyncSession = Depends(get_db)) -> WalletResolver:
    return WalletResolver(db, scan_limit=settings.WALLET_SCAN_LIMIT)


def get_balance_sync(
    db: AsyncSession = Depends(get_db),
    circle: CircleClient = Depends(get_circle_client),
) -> BalanceSyncClient:
    return BalanceSyncClient(circle, db)


def get_reconciler(
    db: AsyncSession = Depends(get_db),
    resolver: WalletResolver = Depends(get_wallet_resolver),
    balances: BalanceSyncClient = Depends(get_balance_sync),
) -> TransactionReconciler:
    return TransactionReconciler(db, resolver, balances)


def get_transaction_fetcher(
    db: AsyncSession = Depends(get_db),
    circle: CircleClient = Depends(get_circle_client),
    resolver: WalletResolver = Depends(get_wallet_resolver),
) -> TransactionFetcher:
    return TransactionFetcher(db, circle, resolver)


def get_onramp_client() -> Optional[StripeOnrampClient]:
    if not settings.STRIPE_SECRET_KEY:
        return None
    return StripeOnrampClient(settings.STRIPE_SECRET_KEY, default_amount=settings.ONRAMP_DEFAULT_AMOUNT)
