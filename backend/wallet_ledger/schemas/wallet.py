from typing import Literal, Optional
from pydantic import BaseModel, Field
from wallet_ledger.chains import POLYGON_AMOY_ID

class BalanceRequest(BaseModel):
    walletId: str
    blockchain: Literal["polygon", "base"]

class BalanceResponse(BaseModel):
    balance: str

class TransactionListRequest(BaseModel):
    walletId: str = Field(pattern=r"^0x[a-fA-F0-9]{40}$")
    networkId: int = POLYGON_AMOY_ID
    pageSize: int = Field(default=50, gt=0, le=50)
    pageAfter: Optional[str] = None
    pageBefore: Optional[str] = None
    # ISO 8601 timestamps
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None

class OnrampRequest(BaseModel):
    # "polygon" or "base"; the wallet defaults to Polygon
    chain: Optional[str] = None
