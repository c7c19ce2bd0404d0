import secrets
from typing import Optional
from hashlib import sha256
from fastapi import Header, HTTPException, status, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from fieldforms.models.api_key import ApiKey
from fieldforms.database import get_db

API_KEY_PREFIX = "ffe_"


def generate_api_key() -> str:
    """New random integrator key; only its hash is stored."""
    return API_KEY_PREFIX + secrets.token_urlsafe(32)


def hash_api_key(api_key: str) -> str:
    """SHA-256 of an API key. Keys are random, so a slow password hash adds nothing."""
    return sha256(api_key.encode('utf-8')).hexdigest()


def verify_api_key(plain_key: str, hashed_key: str) -> bool:
    """Verify an API key against its hash using constant-time comparison."""
    return secrets.compare_digest(hash_api_key(plain_key), hashed_key)


async def get_api_key_from_header(
    x_api_key: Optional[str],
    db: AsyncSession
) -> Optional[ApiKey]:
    """
    Look up an active API key by the hash of the header value.

    Returns:
        ApiKey model if valid, None otherwise
    """
    if not x_api_key:
        return None

    result = await db.execute(
        select(ApiKey).where(
            ApiKey.key_hash == hash_api_key(x_api_key),
            ApiKey.is_active.is_(True)
        )
    )
    return result.scalar_one_or_none()


async def validate_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    db: AsyncSession = Depends(get_db)
) -> ApiKey:
    """
    Validate the X-API-Key header.

    Raises:
        HTTPException 401 if the key is missing, unknown or inactive
    """
    api_key = await get_api_key_from_header(x_api_key, db)

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key
