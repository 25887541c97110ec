"""
Authentication utilities for FastAPI.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from formplay.core.config import settings
from formplay.core.logging import logger
from formplay.core.security import TokenManager, verify_password
from formplay.db.session import get_db
from formplay.models.user import User
from formplay.schemas.user import TokenData
from formplay.services.store import ReportStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api.prefix}/auth/token")


async def authenticate_user(db: AsyncSession, username: str, password: str) -> User:
    """
    Check a username and password pair.

    Raises:
        HTTPException: 401 if the credentials do not match a user
    """
    user = await ReportStore.get_user_by_username(db, username)
    if user is None or not verify_password(password, user.hashed_password):
        logger.warning(f"Failed login attempt for username: {username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    token: str = Depends(oauth2_scheme)
) -> User:
    """
    Get the current authenticated user.

    Args:
        db: Database session
        token: JWT token

    Returns:
        Current user

    Raises:
        HTTPException: If authentication fails
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = TokenManager.verify_token(token)
    if payload is None or payload.get("sub") is None:
        raise credentials_exception
    token_data = TokenData(username=payload["sub"])

    user = await ReportStore.get_user_by_username(db, token_data.username)
    if user is None:
        logger.warning(f"User not found: {token_data.username}")
        raise credentials_exception

    return user
