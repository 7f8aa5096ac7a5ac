"""
Authentication and service dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT authentication
and for wiring the dispatch service to the request's database session.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from dispatch_backend.app.core.jwt import decode_access_token
from dispatch_backend.app.core.redis_client import get_redis
from dispatch_backend.app.db.session import get_db
from dispatch_backend.app.domain.dispatch.dispatch_service import DispatchEventService
from dispatch_backend.app.services.realtime import RealtimePublisher

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Users are managed by an external identity system, so the token is the
    only source of identity: user_id, roles and terminal_ids come from the
    payload.

    Raises:
        HTTPException: 401 if the token is invalid or carries no user id
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("user_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload.setdefault("roles", [])
    payload.setdefault("terminal_ids", [])
    return payload


async def get_dispatch_service(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
) -> DispatchEventService:
    """Build a DispatchEventService bound to the request's session."""
    return DispatchEventService(db, publisher=RealtimePublisher(redis))
