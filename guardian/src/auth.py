"""
Credential manager for the SolarGuardian open API.

Exchanges the configured app key and secret for a bearer token via
``getAuthToken``. The token carries no expiry the client can see, so the
remote API stays the authority on validity: the credential is captured once
and reused until :meth:`CredentialManager.refresh` replaces it.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from guardian.src.client import AUTH_ENDPOINT, TOKEN_HEADER, ApiClient
from guardian.src.errors import AuthError, StageHardError
from guardian.src.models import Credential

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class CredentialManager:
    """Acquires and holds the bearer credential.

    Args:
        client: An opened :class:`~guardian.src.client.ApiClient`.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        client: ApiClient,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._clock = clock
        self._app_key: str | None = None
        self._app_secret: str | None = None
        self._credential: Credential | None = None

    @property
    def current(self) -> Credential | None:
        """The held credential, or ``None`` before the first acquisition."""
        return self._credential

    def age_s(self) -> float | None:
        """Seconds since the held credential was acquired."""
        if self._credential is None:
            return None
        return (self._clock() - self._credential.acquired_at).total_seconds()

    async def acquire(self, app_key: str, app_secret: str) -> Credential:
        """Authenticate and replace the held credential.

        Args:
            app_key: SolarGuardian application key.
            app_secret: SolarGuardian application secret.

        Returns:
            The new credential.

        Raises:
            AuthError: If the key or secret is empty, the request fails, the
                API reports a non-zero status, or no token is returned.
        """
        if not app_key or not app_secret:
            raise AuthError("appKey and appSecret must be configured")

        try:
            payload = await self._client.post(
                AUTH_ENDPOINT, {"appKey": app_key, "appSecret": app_secret}
            )
        except StageHardError as exc:
            raise AuthError(f"Authentication request failed: {exc.reason}") from exc

        status = payload.get("status")
        if status != 0:
            raise AuthError(str(payload.get("info") or f"authentication status {status}"))

        data = payload.get("data")
        token = data.get(TOKEN_HEADER) if isinstance(data, dict) else None
        if not token:
            raise AuthError("Authentication response did not contain a token")

        self._app_key = app_key
        self._app_secret = app_secret
        self._credential = Credential(token=str(token), acquired_at=self._clock())
        logger.info("Acquired SolarGuardian access token")
        return self._credential

    async def refresh(self) -> Credential:
        """Re-authenticate with the key and secret of the last acquisition.

        Raises:
            AuthError: If nothing was acquired yet or re-authentication fails.
        """
        if self._app_key is None or self._app_secret is None:
            raise AuthError("Cannot refresh before the first acquisition")
        return await self.acquire(self._app_key, self._app_secret)
