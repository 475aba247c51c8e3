"""Per-shop bearer credentials from the Auth Hub, with an in-memory cache.

The cache is per instance only; a restarted worker simply refetches.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from urllib.parse import quote

import httpx

from video_processor.config import get_settings
from video_processor.exceptions import (
    CredentialProviderUnavailableError,
    MissingRequiredFieldError,
    NoCredentialError,
)

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    async def get_credential(self, tenant_id: str) -> str: ...


@dataclass
class CachedToken:
    token: str
    cached_at: float
    expires_at: float | None = None


def parse_expiry(value) -> float | None:
    """ISO-8601 (or epoch seconds) to epoch seconds; None if absent/unparsable."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        logger.warning(f"[AUTH] Ignoring unparsable token expiry: {value!r}")
        return None


class TokenCache:
    """Thread-safe token cache bounded by a TTL and the token's own expiry."""

    def __init__(
        self,
        ttl_s: float = 300.0,
        expiry_buffer_s: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store: dict[str, CachedToken] = {}
        self._lock = threading.Lock()
        self._ttl = ttl_s
        self._buffer = expiry_buffer_s
        self._clock = clock

    def _is_valid(self, entry: CachedToken, now: float) -> bool:
        if now >= entry.cached_at + self._ttl:
            return False
        if entry.expires_at is not None and now >= entry.expires_at - self._buffer:
            return False
        return True

    def get(self, tenant_id: str) -> str | None:
        with self._lock:
            entry = self._store.get(tenant_id)
            if entry is None:
                return None
            if not self._is_valid(entry, self._clock()):
                del self._store[tenant_id]
                return None
            return entry.token

    def set(self, tenant_id: str, token: str, expires_at: float | None = None) -> None:
        with self._lock:
            self._store[tenant_id] = CachedToken(token=token, cached_at=self._clock(), expires_at=expires_at)

    def clear(self, tenant_id: str | None = None) -> None:
        """Drop one tenant's token, or all of them."""
        with self._lock:
            if tenant_id is None:
                self._store.clear()
            else:
                self._store.pop(tenant_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class AuthHubCredentialProvider:
    """Fetches JWTs from ``GET {base_url}/token/{shop}``."""

    def __init__(
        self,
        base_url: str | None = None,
        app_key: str | None = None,
        cache: TokenCache | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url if base_url is not None else settings.auth_hub_url).rstrip("/")
        self.app_key = settings.auth_hub_app_key if app_key is None else app_key
        self.cache = cache or TokenCache(settings.token_cache_ttl_s, settings.token_expiry_buffer_s)
        self.timeout_s = settings.http_timeout_s if timeout_s is None else timeout_s
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)

    async def get_credential(self, tenant_id: str) -> str:
        """Return a bearer token for the shop.

        Raises:
            MissingRequiredFieldError: If tenant_id is empty
            NoCredentialError: If the hub has no token for the shop
            CredentialProviderUnavailableError: If the hub is unreachable,
                unconfigured or answers with something unusable
        """
        if not tenant_id:
            raise MissingRequiredFieldError("shopId")

        cached = self.cache.get(tenant_id)
        if cached:
            logger.debug(f"[AUTH] Token cache hit for shop {tenant_id}")
            return cached

        if not self.app_key:
            raise CredentialProviderUnavailableError("AUTH_HUB_APP_KEY is not set")

        url = f"{self.base_url}/token/{quote(str(tenant_id), safe='')}"
        logger.info(f"[AUTH] Fetching token for shop {tenant_id}")
        try:
            async with self._client() as client:
                response = await client.get(
                    url, headers={"x-app-key": self.app_key, "Accept": "application/json"}
                )
        except httpx.HTTPError as e:
            logger.error(f"[AUTH] Auth Hub request failed: {e}")
            raise CredentialProviderUnavailableError(f"Auth Hub request failed: {e}") from e

        if response.status_code == 404:
            raise NoCredentialError(tenant_id, "shop not registered with Auth Hub")
        if not 200 <= response.status_code < 300:
            logger.error(f"[AUTH] Auth Hub returned {response.status_code}: {response.text}")
            raise CredentialProviderUnavailableError(
                f"Auth Hub request failed with status {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CredentialProviderUnavailableError(f"Failed to parse Auth Hub response: {e}") from e

        token = data.get("jwt_token") if isinstance(data, dict) else None
        if not token:
            raise NoCredentialError(tenant_id, "jwt_token not found in Auth Hub response")

        self.cache.set(tenant_id, token, parse_expiry(data.get("token_expires_at")))
        return token
