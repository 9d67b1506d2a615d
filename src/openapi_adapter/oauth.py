"""OAuth2 client-credentials token acquisition and caching."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional, Sequence, Tuple

import httpx

from .credentials import CredentialKind, CredentialStore
from .models import CachedToken
from .schemes import OAuth2Scheme


logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600
EXPIRY_MARGIN_SECONDS = 60

CacheKey = Tuple[str, str]


class TokenCache:
    """Process-lifetime token cache keyed by (scheme name, client id).

    Entries are replaced whole, never mutated in place.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, CachedToken] = {}

    def get(self, key: CacheKey) -> Optional[CachedToken]:
        return self._entries.get(key)

    def put(self, key: CacheKey, entry: CachedToken) -> None:
        self._entries[key] = entry

    def invalidate(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class OAuth2TokenManager:
    def __init__(
        self,
        credentials: CredentialStore,
        cache: Optional[TokenCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials
        self.cache = cache if cache is not None else TokenCache()
        self.http_client = http_client
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        # Coalesces concurrent fetches for the same key into one request.
        self._locks: Dict[CacheKey, asyncio.Lock] = {}

    async def acquire_token(
        self,
        scheme_name: str,
        scheme: OAuth2Scheme,
        scopes: Optional[Sequence[str]] = None,
    ) -> Optional[str]:
        provisioned = self.credentials.get(scheme_name, CredentialKind.OAUTH_TOKEN)
        if provisioned:
            return provisioned

        client_id = self.credentials.get(scheme_name, CredentialKind.OAUTH_CLIENT_ID)
        client_secret = self.credentials.get(scheme_name, CredentialKind.OAUTH_CLIENT_SECRET)
        if not client_id or not client_secret:
            logger.error("Missing client credentials for OAuth2 scheme '%s'", scheme_name)
            return None

        key = (scheme_name, client_id)
        cached = self._cached_token(key)
        if cached:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._cached_token(key)
            if cached:
                return cached
            return await self._fetch_token(key, scheme_name, scheme, client_id, client_secret, scopes)

    def _cached_token(self, key: CacheKey) -> Optional[str]:
        entry = self.cache.get(key)
        if entry is None:
            return None
        now = self.clock()
        if not entry.is_valid(now):
            return None
        logger.debug(
            "Using cached OAuth2 token for '%s' (expires in %d seconds)",
            key[0],
            int(entry.expires_at - now),
        )
        return entry.token

    async def _fetch_token(
        self,
        key: CacheKey,
        scheme_name: str,
        scheme: OAuth2Scheme,
        client_id: str,
        client_secret: str,
        scopes: Optional[Sequence[str]],
    ) -> Optional[str]:
        token_url = scheme.token_url()
        if not token_url:
            logger.error("No supported OAuth2 flow found for '%s'", scheme_name)
            return None

        form = {"grant_type": "client_credentials"}
        scope = self.credentials.get(scheme_name, CredentialKind.OAUTH_SCOPES) or " ".join(scopes or ())
        if scope:
            form["scope"] = scope

        logger.info("Requesting OAuth2 token for '%s' from %s", scheme_name, token_url)
        try:
            async with self._client() as client:
                response = await client.post(
                    token_url,
                    data=form,
                    auth=httpx.BasicAuth(client_id, client_secret),
                    headers={"Accept": "application/json"},
                )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error acquiring OAuth2 token for '%s': %s", scheme_name, exc)
            return None

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            logger.error("Failed to acquire OAuth2 token for '%s': no access_token in response", scheme_name)
            return None

        expires_in = _coerce_expires_in(payload.get("expires_in"))
        self.cache.put(
            key,
            CachedToken(token=token, expires_at=self.clock() + expires_in - EXPIRY_MARGIN_SECONDS),
        )
        logger.info("Acquired OAuth2 token for '%s' (expires in %s seconds)", scheme_name, expires_in)
        return token

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            yield client


def _coerce_expires_in(value: object) -> float:
    try:
        expires_in = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_EXPIRES_IN
    return expires_in if expires_in > 0 else DEFAULT_EXPIRES_IN
