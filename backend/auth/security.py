"""
Security utilities for password hashing and JWT access tokens.

This module provides cryptographic functions for:
- Password hashing using Argon2id (memory-hard, GPU-resistant)
- JWT access token creation and verification
- Password reset token generation
"""

import logging
import os
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

logger = logging.getLogger(__name__)


def is_production_like() -> bool:
    """
    Check if the current environment is production-like (production or staging).

    Returns:
        True if ENVIRONMENT is "production" or "staging", False otherwise
    """
    env = os.environ.get("ENVIRONMENT", "development").lower()
    return env in ("production", "staging")


# Password hashing configuration using Argon2id
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# JWT configuration
# Load SECRET_KEY from environment variable (REQUIRED in production)
SECRET_KEY = os.environ.get("JWT_SECRET_KEY")
if not SECRET_KEY:
    if is_production_like():
        raise ValueError(
            "JWT_SECRET_KEY environment variable is required in production. "
            "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
        )
    else:
        SECRET_KEY = "dev-insecure-key-" + secrets.token_urlsafe(32)
        logger.warning(
            "⚠️  JWT_SECRET_KEY not set! Using temporary development key. "
            "Tokens will not survive a restart. Set JWT_SECRET_KEY environment variable."
        )

ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

# Validate JWT algorithm
SUPPORTED_ALGORITHMS = ["HS256", "HS384", "HS512"]
if ALGORITHM not in SUPPORTED_ALGORITHMS:
    logger.warning(
        f"⚠️  Unsupported JWT_ALGORITHM={ALGORITHM}. Using HS256. "
        f"Supported: {', '.join(SUPPORTED_ALGORITHMS)}"
    )
    ALGORITHM = "HS256"

# Parse token expiry from environment with validation
try:
    ACCESS_TOKEN_EXPIRE_DAYS = int(os.environ.get("ACCESS_TOKEN_EXPIRE_DAYS", "15"))
    if ACCESS_TOKEN_EXPIRE_DAYS < 1 or ACCESS_TOKEN_EXPIRE_DAYS > 90:
        logger.warning(
            f"⚠️  ACCESS_TOKEN_EXPIRE_DAYS={ACCESS_TOKEN_EXPIRE_DAYS} is outside safe range (1-90). "
            "Using default of 15 days."
        )
        ACCESS_TOKEN_EXPIRE_DAYS = 15
except ValueError:
    logger.warning("⚠️  Invalid ACCESS_TOKEN_EXPIRE_DAYS value in environment. Using default of 15 days.")
    ACCESS_TOKEN_EXPIRE_DAYS = 15


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: Plain text password to hash

    Returns:
        Hashed password string (salt embedded)

    Example:
        >>> hashed = hash_password("Secret@123")
        >>> verify_password("Secret@123", hashed)
        True
    """
    logger.debug("Hashing password")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches, False otherwise
    """
    logger.debug("Verifying password")
    is_valid = pwd_context.verify(plain_password, hashed_password)
    logger.debug(f"Password verification result: {is_valid}")
    return is_valid


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT access token for a user.

    Every token carries a random JTI, so two tokens issued for the same user
    never share a string, even within the same second.

    Args:
        user_id: Subject of the token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)

    to_encode = {
        "sub": str(user_id),
        "type": "access",
        "jti": secrets.token_urlsafe(16),
        "exp": expire,
    }

    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    logger.debug(f"Access token created for user {user_id}, expires at: {expire}")
    return encoded_jwt


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify signature and expiry of a JWT and decode it.

    Args:
        token: JWT token string to verify

    Returns:
        Decoded token payload if valid, None otherwise
    """
    logger.debug("Verifying JWT token")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        logger.debug(f"Token verified successfully for user: {payload.get('sub')}")
        return payload
    except JWTError as e:
        logger.info(f"JWT verification failed: {str(e)}")
        return None


def generate_reset_token() -> str:
    """Random, unguessable single-use password reset token."""
    return str(uuid.uuid4())
