"""
Authentication endpoints.
This module provides the token login and the current-user lookup.
"""
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from formplay.core.auth import authenticate_user, get_current_user
from formplay.core.logging import logger
from formplay.core.security import create_access_token
from formplay.db.session import get_db
from formplay.models.user import User as UserModel
from formplay.schemas.user import Token, UserWithPartner, User as UserSchema, Partner
from formplay.services.store import ReportStore

router = APIRouter()


@router.post("/token", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    OAuth2 compatible token login.

    Args:
        form_data: Username and password form
        db: Database session

    Returns:
        Bearer access token
    """
    user = await authenticate_user(db, form_data.username, form_data.password)
    logger.info(f"User logged in: {user.username}")
    return Token(access_token=create_access_token(user.username))


@router.get("/me", response_model=UserWithPartner)
async def read_current_user(
    current_user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Current user together with their partner."""
    user, partner = await ReportStore.get_user_with_partner(db, current_user.id)
    return UserWithPartner(
        user=UserSchema.model_validate(user),
        partner=Partner.model_validate(partner),
    )
