from jose import JWTError, jwt
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from raidergo.core.config import Settings, get_settings
from raidergo.core.exceptions import BuyerMismatchError

security = HTTPBearer(auto_error=False)

def decode_buyer_id(token: str, settings: Settings) -> Optional[str]:
    """Subject of an identity-provider access token, or None if it does not verify"""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError:
        return None
    return payload.get("sub")

async def get_current_buyer_id_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
):
    """
    The capture call may carry the buyer's session token. When it does and
    JWT_SECRET is set, the token has to verify; otherwise the provider-side
    correlation check is the only binding between buyer and order.
    """
    if credentials is None or not settings.JWT_SECRET:
        return None

    buyer_id = decode_buyer_id(credentials.credentials, settings)
    if buyer_id is None:
        raise BuyerMismatchError("Invalid authentication credentials")
    return buyer_id
