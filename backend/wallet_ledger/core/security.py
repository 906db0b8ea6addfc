from typing import Optional
from jose import JWTError, jwt
from wallet_ledger.config import settings

def decode_token(token: str) -> Optional[dict]:
    """Claims of a Supabase Auth access token, or None if it does not verify."""
    if not settings.SUPABASE_JWT_SECRET:
        return None
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload
