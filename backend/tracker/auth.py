"""API auth: optional static API key for the sync endpoints."""
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader

from .config import settings

api_key_header = APIKeyHeader(name=settings.api_key_header, auto_error=False)


def require_api_key(api_key: Optional[str] = Depends(api_key_header)) -> None:
    """
    Validate the API key header when API_KEY is configured.

    With no API_KEY set the endpoints are open (local dev).
    """
    if not settings.api_key:
        return
    if not api_key or not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
