from __future__ import annotations
from uuid import UUID
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from fitstake.db import get_session
from fitstake.security import decode_token
from fitstake.models.wallet import Account
from fitstake.services.wallet import open_account

security = HTTPBearer()

async def get_claims(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    try:
        data = decode_token(credentials.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if data.get("type") != "access":
        raise HTTPException(status_code=401, detail="Wrong token type")
    return data

async def get_current_account(
    claims: dict = Depends(get_claims),
    session: AsyncSession = Depends(get_session),
) -> Account:
    """The identity layer vouches for `sub`; the wallet is opened on first sight."""
    try:
        account_id = UUID(str(claims.get("sub")))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid subject")
    acct = await open_account(session, account_id)
    if acct.disabled:
        raise HTTPException(status_code=403, detail="Account disabled")
    return acct

async def require_admin(
    claims: dict = Depends(get_claims),
    account: Account = Depends(get_current_account),
) -> Account:
    if claims.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin only")
    return account
