"""
FTGI — Security Layer
Admin-only write paths authenticate with the X-Admin-Key header.
"""
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException

from ftgi.config import Settings, get_settings


async def require_admin_key(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.ADMIN_KEY):
        raise HTTPException(status_code=403, detail="Forbidden. Provide X-Admin-Key header.")
