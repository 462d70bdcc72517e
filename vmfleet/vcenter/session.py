"""
Session-authenticated HTTP client for the vCenter REST API.

Creates a session with HTTP Basic credentials, then sends the returned token
in the ``vmware-api-session-id`` header on every call. The token is reused
until the process ends, an explicit logout, or the management plane answers
401, in which case callers ask for a single re-authentication.
"""

import asyncio
import base64
import logging
import time
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from .errors import (
    AuthError,
    AuthMalformedResponseError,
    AuthRejectedError,
    AuthTransportError,
    NotConnectedError,
    SessionExpiredError,
    TransportError,
)
from .models import ConnectionConfig, Session

logger = logging.getLogger(__name__)

QueryParams = Dict[str, Union[str, List[str]]]


class SessionClient:
    """
    Owns the HTTP transport and the session token for one vCenter.

    One instance holds one live session. Concurrent callers share the token
    read-only; re-authentication is serialized behind a lock.
    """

    SESSION_PATH = "/api/session"
    SESSION_HEADER = "vmware-api-session-id"

    def __init__(self, timeout_s: float = 30.0, auth_timeout_s: float = 30.0):
        """
        Initialize the session client.

        Args:
            timeout_s: Per-request timeout in seconds for authenticated calls.
            auth_timeout_s: Timeout in seconds for session creation.
        """
        if timeout_s <= 0 or auth_timeout_s <= 0:
            raise ValueError("Timeouts must be positive numbers of seconds")
        self.timeout_s = float(timeout_s)
        self.auth_timeout_s = float(auth_timeout_s)
        self._config: Optional[ConnectionConfig] = None
        self._client: Optional[httpx.AsyncClient] = None
        self._session: Optional[Session] = None
        self._reauth_lock = asyncio.Lock()
        self._failed_reauth: Optional[Tuple[Optional[str], AuthError]] = None
        self.reauth_count = 0

    async def __aenter__(self) -> "SessionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self, config: ConnectionConfig) -> Session:
        """
        Authenticate against ``POST /api/session``.

        Args:
            config: Host address and credentials.

        Returns:
            The new session.

        Raises:
            AuthTransportError: The endpoint could not be reached.
            AuthRejectedError: Non-success HTTP status.
            AuthMalformedResponseError: Body is not a JSON string token.
        """
        if self._client is not None:
            await self.logout()
            await self._client.aclose()

        self._config = config
        self._session = None
        self._failed_reauth = None
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={"Accept": "application/json"},
            verify=config.verify_tls,
            timeout=httpx.Timeout(self.timeout_s),
        )
        logger.info(
            "Connecting to vCenter base_url=%s user=%s verify_tls=%s",
            config.base_url, config.username, config.verify_tls,
        )
        self._session = await self._create_session()
        return self._session

    async def _create_session(self) -> Session:
        config = self._config
        credentials = f"{config.username}:{config.password.get_secret_value()}"
        encoded = base64.b64encode(credentials.encode("utf-8")).decode("ascii")

        start_time = time.monotonic()
        try:
            response = await self._client.post(
                self.SESSION_PATH,
                headers={"Authorization": f"Basic {encoded}"},
                timeout=self.auth_timeout_s,
            )
        except httpx.TimeoutException as e:
            raise AuthTransportError(
                f"Timed out after {self.auth_timeout_s:.0f}s connecting to {config.base_url}"
            ) from e
        except httpx.RequestError as e:
            raise AuthTransportError(f"Could not reach {config.base_url}: {e}") from e
        latency_ms = int((time.monotonic() - start_time) * 1000)

        if not response.is_success:
            logger.warning(
                "Session creation rejected status=%s in %dms", response.status_code, latency_ms
            )
            raise AuthRejectedError(
                f"vCenter at {config.base_url} rejected the credentials for "
                f"'{config.username}' (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        try:
            token = response.json()
        except ValueError as e:
            raise AuthMalformedResponseError(
                f"Session endpoint at {config.base_url} did not return JSON"
            ) from e
        if not isinstance(token, str) or not token:
            raise AuthMalformedResponseError(
                f"Session endpoint at {config.base_url} did not return a token string"
            )

        logger.info("Session established with %s in %dms", config.base_url, latency_ms)
        return Session(token=token, base_url=config.base_url)

    async def reauthenticate(self, stale_token: Optional[str] = None) -> Session:
        """
        Replace an expired session, at most one attempt in flight.

        Callers pass the token their request was rejected with. If the
        current session already carries a different token, another caller has
        refreshed it and that session is returned without a new request. A
        failed attempt is remembered for its stale token: callers queued
        behind it get the same error instead of retrying the credentials.
        """
        if self._config is None:
            raise NotConnectedError("Cannot re-authenticate before connect()")

        async with self._reauth_lock:
            current = self._session
            if current is not None and stale_token is not None and current.token != stale_token:
                logger.debug("Session already refreshed by another caller")
                return current

            failed = self._failed_reauth
            if failed is not None and failed[0] == stale_token:
                raise failed[1]

            logger.warning("vCenter session expired, re-authenticating")
            try:
                self._session = await self._create_session()
            except AuthError as e:
                self._failed_reauth = (stale_token, e)
                raise
            self._failed_reauth = None
            self.reauth_count += 1
            return self._session

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[QueryParams] = None,
        json: Optional[Any] = None,
    ) -> httpx.Response:
        """
        Issue one authenticated call. No automatic retry.

        Any HTTP status other than 401 is returned to the caller.

        Raises:
            NotConnectedError: connect() has not succeeded.
            SessionExpiredError: The management plane answered 401.
            TransportError: Network failure or timeout.
        """
        if self._client is None or self._session is None:
            raise NotConnectedError("No vCenter session; call connect() first")

        token = self._session.token
        start_time = time.monotonic()
        try:
            logger.debug("HTTP %s %s params=%s", method, path, params)
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers={self.SESSION_HEADER: token},
            )
        except httpx.TimeoutException as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            logger.error("HTTP %s %s timed out in %dms", method, path, latency_ms)
            raise TransportError(
                f"{method} {path} timed out after {self.timeout_s:.0f}s", timed_out=True
            ) from e
        except httpx.RequestError as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            logger.error("HTTP %s %s failed in %dms: %s", method, path, latency_ms, e)
            raise TransportError(f"{method} {path} failed: {e}") from e

        latency_ms = int((time.monotonic() - start_time) * 1000)
        logger.info("HTTP %s %s -> %s in %dms", method, path, response.status_code, latency_ms)

        if response.status_code == 401:
            raise SessionExpiredError(f"Session rejected for {method} {path}", token=token)
        return response

    async def logout(self) -> None:
        """Delete the session on the management plane. Best effort."""
        if self._client is None or self._session is None:
            return
        token = self._session.token
        self._session = None
        try:
            await self._client.delete(self.SESSION_PATH, headers={self.SESSION_HEADER: token})
            logger.info("Logged out of %s", self._config.base_url)
        except httpx.HTTPError as e:
            logger.warning("Logout from %s failed: %s", self._config.base_url, e)

    async def close(self) -> None:
        """Log out and close the HTTP client."""
        await self.logout()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
