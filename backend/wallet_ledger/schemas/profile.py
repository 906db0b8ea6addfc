from typing import Optional
from pydantic import BaseModel

class SetupWalletsRequest(BaseModel):
    credential: str
    circleAddress: Optional[str] = None

class CredentialRequest(BaseModel):
    credential: str
