"""Reads credentials written by the account-linking flow."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from gallevr_sync.domain.auth import AuthData
from gallevr_sync.services.auth import AuthStore

_logger = logging.getLogger(__name__)


@dataclass
class JsonAuthStore(AuthStore):
    """Loads ``{userId, accessKey}`` from a JSON file. Never writes it."""

    path: Path

    def load_auth(self) -> AuthData | None:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            _logger.exception("Failed to read auth data from %s", self.path)
            return None
        user_id = payload.get("userId") if isinstance(payload, dict) else None
        access_key = payload.get("accessKey") if isinstance(payload, dict) else None
        if not user_id or not access_key:
            _logger.warning("Auth data in %s is incomplete", self.path)
            return None
        return AuthData(user_id=str(user_id), access_key=str(access_key))
