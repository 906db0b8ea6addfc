import json
import logging
import re
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from wallet_ledger.core.deps import get_auth_claims, get_current_profile
from wallet_ledger.database import get_db
from wallet_ledger.models.profile import Profile
from wallet_ledger.models.wallet import Wallet, WalletChain
from wallet_ledger.schemas.profile import CredentialRequest, SetupWalletsRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["profile"])

PUBLIC_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{40,}$")


def derive_wallet_address(credential: str, circle_address: Optional[str]) -> str:
    """Wallet address for a passkey credential.

    Prefers the address Circle generated for the smart account; otherwise
    takes the first 20 bytes of the credential's public key.
    """
    if circle_address:
        return circle_address
    try:
        public_key = json.loads(credential).get("publicKey")
    except (json.JSONDecodeError, AttributeError):
        public_key = None
    if not public_key or not PUBLIC_KEY_RE.match(public_key):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Invalid public key format: {public_key}")
    return public_key[:42].lower()


@router.get("/auth-status")
async def auth_status(claims: Optional[dict] = Depends(get_auth_claims)):
    if not claims:
        return {"authenticated": False, "user": None}
    return {
        "authenticated": True,
        "user": {"id": claims["sub"], "email": claims.get("email")},
    }


@router.post("/setup-wallets", status_code=201)
async def setup_wallets(
    body: SetupWalletsRequest,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    """Create (or re-point) the caller's Polygon and Base wallets."""
    wallet_address = derive_wallet_address(body.credential, body.circleAddress)

    existing = {
        w.blockchain: w
        for w in await db.scalars(select(Wallet).where(Wallet.profile_id == profile.id))
    }
    for chain in (WalletChain.POLYGON, WalletChain.BASE):
        wallet = existing.get(chain)
        if wallet:
            wallet.wallet_address = wallet_address
            wallet.circle_wallet_id = wallet_address
            wallet.passkey_credential = body.credential
        else:
            db.add(Wallet(
                profile_id=profile.id,
                blockchain=chain,
                wallet_address=wallet_address,
                circle_wallet_id=wallet_address,
                passkey_credential=body.credential,
                wallet_type="modular",
                account_type="SCA",
                currency="USDC",
            ))
    await db.commit()

    response = JSONResponse(
        {
            "message": "Wallets created successfully",
            "polygonAddress": wallet_address,
            "baseAddress": wallet_address,
            "success": True,
            "redirectUrl": "/dashboard",
        },
        status_code=201,
    )
    response.set_cookie("wallet_setup_complete", "true", max_age=3600, httponly=True, samesite="strict")
    return response


@router.get("/get-credential")
async def get_credential(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    credential = await db.scalar(
        select(Wallet.passkey_credential).where(Wallet.profile_id == profile.id).limit(1)
    )
    if not credential:
        return JSONResponse({"error": "Passkey credential not found for user"}, status_code=404)
    return {"credential": credential}


@router.post("/update-login-credential")
async def update_login_credential(
    body: CredentialRequest,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    wallets = list(await db.scalars(select(Wallet).where(Wallet.profile_id == profile.id)))
    if not wallets:
        return JSONResponse({"error": "Wallet not found in database"}, status_code=404)
    for wallet in wallets:
        wallet.passkey_credential = body.credential
    await db.commit()
    return {"success": True}
