import hashlib
import hmac

from fastapi import Depends, Header, HTTPException, status

from jobsync.core.config import Settings, get_settings

ADMIN_KEY_HEADER = "X-Admin-Key"


async def require_admin(
    settings: Settings = Depends(get_settings),
    x_admin_key: str | None = Header(default=None, alias=ADMIN_KEY_HEADER),
) -> str:
    """Guard for admin-only routes; returns a short fingerprint of the presented key for logging."""
    if not settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="admin auth is not configured",
        )
    if not x_admin_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"admin routes require {ADMIN_KEY_HEADER}",
        )

    presented = hashlib.sha256(x_admin_key.encode("utf-8")).hexdigest()
    expected = hashlib.sha256(settings.admin_api_key.encode("utf-8")).hexdigest()
    if not hmac.compare_digest(presented, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid admin key")
    return presented[:12]
