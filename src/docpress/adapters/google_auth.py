from __future__ import annotations

import asyncio
import json
import threading

import google.auth.transport.requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from ..errors import ConfigError, IntegrationError

DRIVE_SCOPE = "https://www.googleapis.com/auth/drive"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class ServiceAccountTokens:
    """Bearer tokens for one service account, refreshed when they expire."""

    def __init__(self, service_account_json: str, scopes: list[str]) -> None:
        try:
            info = json.loads(service_account_json)
        except json.JSONDecodeError as exc:
            raise ConfigError("service account JSON is not valid JSON") from exc
        try:
            self._credentials = service_account.Credentials.from_service_account_info(
                info, scopes=scopes
            )
        except (ValueError, KeyError) as exc:
            raise ConfigError(f"invalid service account: {exc}") from exc
        self._lock = threading.Lock()

    async def __call__(self) -> str:
        return await asyncio.to_thread(self._token)

    def _token(self) -> str:
        with self._lock:
            if not self._credentials.valid:
                try:
                    self._credentials.refresh(google.auth.transport.requests.Request())
                except GoogleAuthError as exc:
                    raise IntegrationError(
                        f"token_refresh_failed: {exc}", code="AUTH_FAILED", service="google"
                    ) from exc
            return self._credentials.token
