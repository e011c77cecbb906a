from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlmodel import Session

from theme_api.core import crud
from theme_api.core.config import settings
from theme_api.core.database import get_session
from theme_api.models.user import User

logger = logging.getLogger(__name__)

# Tokens are issued by the hosted auth provider; tokenUrl is informational for OpenAPI docs only.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/v1/token", auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify an auth-provider JWT and return its claims (raises JWTError)."""
    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    return jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE or None,
        options=options,
    )


def _user_id_from_claims(payload: dict[str, Any]) -> Optional[UUID]:
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        return None
    try:
        return UUID(sub)
    except ValueError:
        return None


async def get_current_user(
    session: Session = Depends(get_session),
    token: Optional[str] = Depends(oauth2_scheme),
) -> User:
    """Decode the bearer JWT and return the current user or raise 401.

    First sight of a valid token creates the local users row so billing and
    usage rows have something to reference.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception
    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        logger.info("[auth] Rejected token: %s", exc)
        raise credentials_exception

    user_id = _user_id_from_claims(payload)
    if user_id is None:
        raise credentials_exception

    email = payload.get("email") if isinstance(payload.get("email"), str) else None
    return crud.get_or_create_user(session, user_id, email)


async def get_optional_user(
    session: Session = Depends(get_session),
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[User]:
    """Like get_current_user for public routes: None without a token, 401 for a bad one."""
    if not token:
        return None
    return await get_current_user(session=session, token=token)
