"""Synchronous client for the account webhooks.

POST /create-user - register or fetch the signed-in user
POST /update-pool - save pool settings
POST /update-user - save profile (nickname)
"""

import os

import requests
import structlog

from poolsnap.api.analysis_client import DEFAULT_WEBHOOK_BASE_URL
from poolsnap.api.schemas import PoolSettings, ProfileUpdate, UserProfile

logger = structlog.get_logger(__name__)


class AccountError(Exception):
    """An account webhook call failed or returned an unusable body."""
    pass


class AccountClient:
    """Wraps the account webhooks with JSON in, JSON out."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or os.environ.get("WEBHOOK_BASE_URL", DEFAULT_WEBHOOK_BASE_URL)).rstrip("/")
        self.timeout = timeout if timeout is not None else float(os.environ.get("ACCOUNT_TIMEOUT", "10"))

    def _post(self, path: str, payload: dict, token: str | None = None) -> dict:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            resp = requests.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("account.transport_failed", path=path, error=str(e))
            raise AccountError(f"{path} unreachable: {e}") from e

        if resp.status_code >= 400:
            logger.error("account.http_error", path=path, status=resp.status_code)
            raise AccountError(f"HTTP {resp.status_code}: {resp.reason} - {resp.text or 'No error text available'}")

        try:
            data = resp.json()
        except ValueError as e:
            raise AccountError(f"{path} returned a non-JSON body") from e

        # n8n wraps single items in a list when "respond with all items" is on
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict):
            raise AccountError(f"{path} returned an unexpected body")
        return data

    def sync_user(self, sub: str, token: str | None = None) -> UserProfile:
        """Create the user on first sign-in and return the stored profile.

        Args:
            sub: Subject identifier from the identity provider.
            token: Optional ID token. The call proceeds without one.

        Raises:
            AccountError: If the webhook fails or the body is malformed.
        """
        logger.info("account.sync", has_token=bool(token))
        data = self._post("/create-user", {"sub": sub}, token)
        try:
            return UserProfile.model_validate(data)
        except ValueError as e:
            raise AccountError(f"Malformed user profile: {e}") from e

    def update_pool(self, sub: str, settings: PoolSettings) -> dict:
        """Persist pool settings for the user."""
        payload = {"sub": sub, **settings.model_dump(by_alias=True)}
        data = self._post("/update-pool", payload)
        logger.info("account.pool_updated", pool_type=settings.pool_type)
        return data

    def update_profile(self, sub: str, update: ProfileUpdate) -> dict:
        """Persist the user's nickname."""
        data = self._post("/update-user", {"sub": sub, "nickname": update.nickname})
        logger.info("account.profile_updated")
        return data
