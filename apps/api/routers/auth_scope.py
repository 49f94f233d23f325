"""Shared-secret dependencies for scheduler-facing endpoints."""

import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import is_production, settings


auth_scheme = HTTPBearer(auto_error=False)


def has_valid_cron_secret(credentials: Optional[HTTPAuthorizationCredentials]) -> bool:
    secret = (settings.CRON_SECRET or "").strip()
    if not secret or not credentials or credentials.scheme.lower() != "bearer":
        return False
    return hmac.compare_digest(credentials.credentials.encode("utf-8"), secret.encode("utf-8"))


async def require_cron_secret(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> None:
    """Reject requests without `Authorization: Bearer $CRON_SECRET` in production."""
    if not is_production():
        return
    if not has_valid_cron_secret(credentials):
        raise HTTPException(status_code=401, detail="Unauthorized")


async def require_cron_auth(
    manual: bool = Query(False),
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> None:
    """Like require_cron_secret, but a manual trigger skips the secret."""
    if manual:
        return
    await require_cron_secret(credentials)
