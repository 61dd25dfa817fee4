"""FileMaker session service: owns the Data API bearer token and keeps it fresh."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from src.clients.filemaker import FileMakerClient, FileMakerUnauthorizedError
from src.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_SESSION_LEASE = timedelta(minutes=13)
# One re-login per operation; a second rejection means the account itself is broken.
MAX_AUTH_RETRIES = 1


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _mask(token: str | None) -> str:
    if not token:
        return "***"
    return f"{token[:8]}..." if len(token) > 8 else "***"


@dataclass(frozen=True, slots=True)
class FileMakerSession:
    """A Data API token and the moment we stop trusting it. Replaced as a unit, never mutated."""

    token: str | None = None
    expires_at: datetime | None = None

    def is_valid(self, now: datetime) -> bool:
        return self.token is not None and self.expires_at is not None and now < self.expires_at


class SessionManagerClosedError(RuntimeError):
    """Raised when an authenticated call is attempted after shutdown began."""


class FileMakerSessionManager:
    """Manages the process-wide FileMaker session.

    States: unauthenticated -> valid -> (lease elapsed or token rejected) -> unauthenticated.
    `stop()` moves to a terminal shutting-down state and logs out.

    Concurrent callers may log in redundantly; each login replaces the whole session, so the
    last writer wins.
    """

    def __init__(
        self,
        client: FileMakerClient,
        *,
        lease: timedelta = DEFAULT_SESSION_LEASE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if lease <= timedelta(0):
            raise ValueError("lease must be positive")

        self._client = client
        self._lease = lease
        self._clock = clock
        self._session = FileMakerSession()
        self._closed = False
        self._refresh_task: asyncio.Task[None] | None = None
        self.login_count = 0

    @property
    def session(self) -> FileMakerSession:
        return self._session

    @property
    def lease(self) -> timedelta:
        return self._lease

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_valid(self._clock())

    async def login(self) -> FileMakerSession:
        """Create a new Data API session and replace the current one.

        Raises:
            FileMakerAuthenticationError: If the credentials are rejected
        """
        if self._closed:
            raise SessionManagerClosedError("FileMaker session manager is shut down")

        logged_in_at = self._clock()
        token = await self._client.create_session()
        self._session = FileMakerSession(token=token, expires_at=logged_in_at + self._lease)
        self.login_count += 1

        logger.info(
            "FileMaker login succeeded",
            token_prefix=_mask(token),
            expires_at=self._session.expires_at.isoformat(),
            lease_seconds=int(self._lease.total_seconds()),
        )
        return self._session

    async def ensure_valid(self) -> str:
        """Return a token that is inside its lease, logging in first if needed."""
        session = self._session
        if session.is_valid(self._clock()):
            return session.token  # type: ignore[return-value]

        if session.token is not None:
            logger.info("FileMaker session lease elapsed; renewing", token_prefix=_mask(session.token))
        session = await self.login()
        return session.token  # type: ignore[return-value]

    def invalidate(self, rejected_token: str | None = None) -> None:
        """Forget the current session.

        With `rejected_token`, only forget it if it is still the current one, so a token that a
        concurrent login already replaced is left alone.
        """
        if rejected_token is not None and self._session.token != rejected_token:
            return
        self._session = FileMakerSession()

    async def with_auth(self, operation: Callable[[str], Awaitable[T]]) -> T:
        """Run `operation(token)` with a valid token, re-logging in once if the token is rejected."""
        attempt = 0
        while True:
            token = await self.ensure_valid()
            try:
                return await operation(token)
            except FileMakerUnauthorizedError as e:
                self.invalidate(token)
                if attempt >= MAX_AUTH_RETRIES:
                    logger.error(
                        "FileMaker rejected a freshly issued token",
                        attempts=attempt + 1,
                        fm_code=e.fm_code,
                    )
                    raise
                attempt += 1
                logger.warning(
                    "FileMaker token rejected; logging in again and retrying once",
                    fm_code=e.fm_code,
                    status_code=e.status_code,
                )

    async def logout(self) -> None:
        """Best-effort session deletion. Local state is cleared even if the remote call fails."""
        token = self._session.token
        self._session = FileMakerSession()
        if token is None:
            return

        try:
            await self._client.delete_session(token)
            logger.info("FileMaker logout succeeded", token_prefix=_mask(token))
        except Exception as e:
            logger.warning("FileMaker logout failed", error=str(e), token_prefix=_mask(token))

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Start the periodic refresh task that keeps the session warm without traffic."""
        if self._refresh_task is not None or self._closed:
            return

        logger.info(
            "Starting FileMaker session refresh loop",
            interval_seconds=int(self._lease.total_seconds()),
        )
        self._refresh_task = asyncio.create_task(self._periodic_refresh())

    async def stop(self) -> None:
        """Stop refreshing and log out. Terminal: no further logins are allowed."""
        if self._closed:
            return

        logger.info("Stopping FileMaker session manager")
        self._closed = True

        if self._refresh_task:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None

        await self.logout()

    async def _periodic_refresh(self) -> None:
        while not self._closed:
            try:
                await asyncio.sleep(self._lease.total_seconds())

                if not self._closed:  # Check again after sleep
                    await self.login()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Scheduled FileMaker session refresh failed", error=str(e))
                # Keep running; the next request will retry the login on demand
