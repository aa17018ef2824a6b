"""Resolves gallery credentials for the upload worker."""

import logging
from dataclasses import dataclass
from typing import Protocol

from gallevr_sync.adapters.gallery_client import GalleryClient
from gallevr_sync.domain.auth import AuthData
from gallevr_sync.errors import AuthenticationError
from gallevr_sync.services.cache import Cache

_logger = logging.getLogger(__name__)


class AuthStore(Protocol):
    """Read-only source of stored credentials."""

    def load_auth(self) -> AuthData | None:
        """Return stored credentials, or ``None`` when not linked."""


@dataclass
class AuthService:
    """Loads credentials and confirms the account is verified."""

    store: AuthStore
    gallery_client: GalleryClient
    cache: Cache
    verification_ttl_seconds: float = 300

    async def require_verified(self) -> AuthData:
        """Return credentials for a verified account.

        Raises ``AuthenticationError`` when no credentials are stored or the
        account is not verified. Positive and negative results are cached.
        """
        auth = self.store.load_auth()
        if auth is None:
            raise AuthenticationError("No gallery account is linked")

        cache_key = _cache_key(auth)
        cached = self.cache.get(cache_key)
        if isinstance(cached, bool):
            verified = cached
        else:
            verified = await self.gallery_client.check_verification(auth)
            self.cache.set(cache_key, verified, self.verification_ttl_seconds)
            _logger.info("Verification status for %s: %s", auth.user_id, verified)
        if not verified:
            raise AuthenticationError(f"Account {auth.user_id} is not verified")
        return auth

    def forget(self, auth: AuthData) -> None:
        """Drop the cached verification result for ``auth``."""
        self.cache.invalidate(_cache_key(auth))


def _cache_key(auth: AuthData) -> str:
    return f"verify:{auth.user_id}"
