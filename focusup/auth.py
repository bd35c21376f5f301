"""
X-API-Key check shared by every session and reward endpoint.
The key is read from FOCUSUP_API_KEY on each request.
"""
import logging
import os
import secrets
from typing import Optional

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from focusup.constants import API_KEY_ENV, API_KEY_HEADER, DEFAULT_API_KEY

logger = logging.getLogger("focusup.auth")

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def get_api_key() -> str:
    """Configured key, falling back to the development default"""
    return os.getenv(API_KEY_ENV) or DEFAULT_API_KEY


def is_valid_key(candidate: Optional[str]) -> bool:
    if not candidate:
        return False
    return secrets.compare_digest(candidate.encode(), get_api_key().encode())


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """Reject requests without a matching X-API-Key header"""
    if not is_valid_key(api_key):
        logger.warning("Rejected request with missing or invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API Key"
        )
    return api_key
