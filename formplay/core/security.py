"""
Security utilities for the application.
This module provides password hashing and verification and
JWT access token creation and verification.
"""
import secrets
from typing import Optional, Union, Any, Dict
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from passlib.context import CryptContext
from formplay.core.config import settings
from formplay.core.logging import logger

# Password context for hashing and verification
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

class TokenManager:
    """JWT token management."""

    @staticmethod
    def create_access_token(
        subject: Union[str, Any],
        expires_delta: Optional[timedelta] = None,
        additional_claims: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Create a JWT access token.

        Args:
            subject: The subject to encode in the token (the username)
            expires_delta: Optional expiration time delta
            additional_claims: Optional additional claims to include

        Returns:
            Encoded JWT token
        """
        now = datetime.now(timezone.utc)
        expire = now + (
            expires_delta
            or timedelta(minutes=settings.security.access_token_expire_minutes)
        )

        to_encode = {
            "exp": expire,
            "iat": now,
            "sub": str(subject),
            "type": "access",
            "jti": secrets.token_hex(16),
        }
        if additional_claims:
            to_encode.update(additional_claims)

        encoded_jwt = jwt.encode(
            to_encode,
            settings.security.secret_key_str,
            algorithm=settings.security.algorithm
        )
        logger.debug(f"Created access token for subject: {subject}")
        return encoded_jwt

    @staticmethod
    def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
        """
        Verify and decode a JWT token.

        Expiry is checked by python-jose while decoding.

        Returns:
            Decoded token payload or None if invalid
        """
        try:
            payload = jwt.decode(
                token,
                settings.security.secret_key_str,
                algorithms=[settings.security.algorithm]
            )
        except JWTError as e:
            logger.warning(f"JWT verification error: {e}")
            return None

        if payload.get("type") != token_type:
            logger.warning(f"Invalid token type: expected {token_type}, got {payload.get('type')}")
            return None
        return payload

class PasswordManager:
    """Password management utilities."""

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against a hash.

        Args:
            plain_password: The plain text password
            hashed_password: The hashed password

        Returns:
            True if password matches hash, False otherwise
        """
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError) as e:
            logger.error(f"Password verification error: {e}")
            return False

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Generate a bcrypt password hash."""
        return pwd_context.hash(password)


def create_access_token(
    subject: Union[str, Any],
    expires_delta: Optional[timedelta] = None
) -> str:
    return TokenManager.create_access_token(subject, expires_delta)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return PasswordManager.verify_password(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return PasswordManager.get_password_hash(password)
