from __future__ import annotations

from fastapi import Depends, HTTPException, status, Request
import jwt
from sqlalchemy.orm import Session

from . import crud, models
from .config import settings
from .database import get_db
from .schemas import AuthContext


def get_token_from_cookie_or_header(request: Request) -> str | None:
    """Extract token from either Authorization header or access_token cookie"""
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]

    cookie_token = request.cookies.get("access_token")
    if cookie_token and cookie_token.startswith("Bearer "):
        return cookie_token[7:]

    return None


def get_auth_context(request: Request, db: Session = Depends(get_db)) -> AuthContext:
    """
    Resolve the acting user from the session token.

    Tokens are issued after the wallet signature has been checked, so the
    identity inside is trusted as-is. We only confirm the user still exists
    and that the token's wallet matches it.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = get_token_from_cookie_or_header(request)
    if not token:
        raise credentials_exception

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.PyJWTError:
        raise credentials_exception

    wallet: str | None = payload.get("sub")
    user_id = payload.get("uid")
    if wallet is None or not isinstance(user_id, int):
        raise credentials_exception

    user = crud.get_user(db, user_id)
    if user is None or user.wallet_address != wallet:
        raise credentials_exception
    return AuthContext(user_id=user.id, wallet_address=user.wallet_address)


def get_current_user(
    ctx: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)
) -> models.User:
    user = crud.get_user(db, ctx.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")
    return user
