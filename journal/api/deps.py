"""Shared API dependencies."""

from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from journal.config import settings
from journal.database import engine
from journal.services.auth import decode_access_token
from journal.services.trade_service import TradeService

bearer_scheme = HTTPBearer()


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> str:
    """Validate JWT and return the user id it was issued for."""
    user_id = decode_access_token(credentials.credentials)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return user_id


@lru_cache
def get_trade_service() -> TradeService:
    """Process-wide service; built on first request so tests can override it."""
    return TradeService.from_settings(engine, settings)
