"""
Credential vault: hands out valid access tokens for stored YouTube connections.

Access tokens are refreshed against Google's token endpoint shortly before
they expire. A failed refresh leaves the stored connection untouched.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from config import require_google_client_credentials, settings
from services.crypto import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_SECONDS = 3600


class TokenRefreshError(RuntimeError):
    """The identity provider refused to refresh; message is its own description."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat those as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class CredentialVault:
    """Decrypts stored tokens and refreshes them when close to expiry."""

    def __init__(
        self,
        store: Any,
        clock: Callable[[], datetime] = utc_now,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.clock = clock
        self.http_transport = http_transport

    def needs_refresh(self, connection: Any) -> bool:
        expires_at = as_utc(connection.token_expires_at)
        if expires_at is None:
            return True
        skew = timedelta(seconds=settings.TOKEN_REFRESH_SKEW_SECONDS)
        return self.clock() >= expires_at - skew

    async def ensure_valid_access_token(self, connection: Any) -> str:
        if self.needs_refresh(connection):
            return await self.refresh_access_token(connection)
        return decrypt_token(connection.access_token_encrypted)

    async def refresh_access_token(self, connection: Any) -> str:
        """
        Exchange the refresh token for a new access token and persist it.

        Raises:
            ConfigurationError: client credentials or encryption key missing
            TokenRefreshError: the token endpoint rejected the request
        """
        client_id, client_secret = require_google_client_credentials()
        refresh_token = decrypt_token(connection.refresh_token_encrypted)

        try:
            async with httpx.AsyncClient(
                timeout=settings.HTTP_TIMEOUT_SECONDS,
                transport=self.http_transport,
            ) as client:
                response = await client.post(
                    settings.GOOGLE_TOKEN_URL,
                    data={
                        "client_id": client_id,
                        "client_secret": client_secret,
                        "refresh_token": refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"Token refresh request failed: {e}") from e

        payload = _payload(response)
        if not response.is_success:
            message = payload.get("error_description") or payload.get("error") or f"HTTP {response.status_code}"
            raise TokenRefreshError(message)

        access_token = payload.get("access_token")
        if not access_token:
            raise TokenRefreshError("Token endpoint returned no access_token")

        now = self.clock()
        expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS)
        fields: Dict[str, Any] = {
            "access_token_encrypted": encrypt_token(access_token),
            "token_expires_at": now + timedelta(seconds=expires_in),
            "last_refreshed_at": now,
            "connection_error": None,
            "is_active": True,
        }
        rotated = payload.get("refresh_token")
        if rotated:
            fields["refresh_token_encrypted"] = encrypt_token(rotated)

        await self.store.update_connection_tokens(connection.id, fields)
        for name, value in fields.items():
            setattr(connection, name, value)

        logger.info("Refreshed access token for connection %s (expires in %ss)", connection.id, expires_in)
        return access_token
