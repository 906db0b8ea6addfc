import logging
from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from wallet_ledger.core.deps import get_auth_claims, get_onramp_client
from wallet_ledger.database import get_db
from wallet_ledger.models.profile import Profile
from wallet_ledger.models.wallet import Wallet, WalletChain
from wallet_ledger.schemas.wallet import OnrampRequest
from wallet_ledger.services.onramp import StripeOnrampClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe", tags=["onramp"])


@router.post("/onramp")
async def create_onramp_session(
    body: OnrampRequest,
    claims: Optional[dict] = Depends(get_auth_claims),
    db: AsyncSession = Depends(get_db),
    onramp: Optional[StripeOnrampClient] = Depends(get_onramp_client),
):
    """Start a Stripe on-ramp session that tops up the caller's wallet with USDC."""
    if not claims:
        return JSONResponse({"error": "Not authenticated"}, status_code=401)
    if onramp is None:
        logger.error("STRIPE_SECRET_KEY is not set; cannot create onramp session")
        return JSONResponse(
            {"error": "Internal server error while requesting Stripe onramp url"},
            status_code=500,
        )

    try:
        profile = await db.scalar(select(Profile).where(Profile.auth_user_id == claims["sub"]))
        if not profile:
            logger.error("No profile for auth user %s", claims["sub"])
            return JSONResponse({"error": "Profile not found for user"}, status_code=500)

        blockchain = (body.chain or "").upper() or WalletChain.POLYGON
        wallet = await db.scalar(
            select(Wallet).where(Wallet.profile_id == profile.id, Wallet.blockchain == blockchain)
        )
        if not wallet:
            return JSONResponse({"error": "Wallet not found"}, status_code=404)

        client_secret = await onramp.create_session(
            wallet.wallet_address,
            body.chain.lower() if body.chain else None,
        )
    except Exception as exc:
        logger.exception("Error requesting Stripe onramp url: %s", exc)
        return JSONResponse(
            {"error": "Internal server error while requesting Stripe onramp url"},
            status_code=500,
        )
    return {"clientSecret": client_secret}
