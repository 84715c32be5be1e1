"""Connection manager: keeps one event stream per NVR host alive forever."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

import aiohttp

from .digest_auth import solve_challenge
from .event_channel import EventChannel, Signal
from .exceptions import AuthenticationRequired, DigestChallengeError, StreamHTTPError
from .models import ConnectionTarget, StreamError
from .stream_session import StreamRequest, StreamSession

DEFAULT_RECONNECT_DELAY = 10.0
DEFAULT_MAX_AUTH_ATTEMPTS = 5


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    STREAMING = "streaming"
    RECONNECT_PENDING = "reconnect_pending"
    STOPPED = "stopped"


class ConnectionManager:
    """Drive a StreamSession through connect, digest retry, stream, reconnect.

    Every failure waits ``reconnect_delay`` seconds before the next attempt;
    only a Digest challenge is retried immediately. After ``max_auth_attempts``
    rejected challenges in one attempt the manager reports an error and falls
    back to the delayed reconnect. The loop never gives up on its own, and
    ``stop()`` is the only way to end it.
    """

    def __init__(
        self,
        target: ConnectionTarget,
        channel: Optional[EventChannel] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        max_auth_attempts: int = DEFAULT_MAX_AUTH_ATTEMPTS,
        session: Optional[StreamSession] = None,
        logger: Optional[logging.Logger] = None,
        **session_options,
    ) -> None:
        self.target = target
        self.channel = channel or EventChannel(target.host)
        self.reconnect_delay = reconnect_delay
        self.max_auth_attempts = max_auth_attempts
        self.log = logger or logging.getLogger(__name__)
        self.session = session or StreamSession(target, self.channel, logger=self.log, **session_options)

        self.state = ConnectionState.CONNECTING
        self.attempts = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def host(self) -> str:
        return self.target.host

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # Public API -------------------------------------------------------------
    def start(self) -> asyncio.Task:
        """Schedule the connection loop on the running event loop."""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(
                self.run(), name=f"dahua-stream-{self.host}"
            )
        return self._task

    async def stop(self) -> None:
        """Cancel this target's loop, including a pending reconnect timer."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.session.close()
        self.state = ConnectionState.STOPPED

    async def run(self) -> None:
        try:
            while True:
                try:
                    await self.connect_once()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # pragma: no cover - defensive
                    self.log.exception("Event stream error for %s: %s", self.host, exc)
                    self._error(repr(exc))
                await self._wait_reconnect()
        finally:
            await self.session.close()

    async def connect_once(self) -> None:
        """One outer connection attempt; the nonce count restarts at 0."""
        self.attempts += 1
        count = 0
        request = StreamRequest.for_target(self.target)

        while True:
            self._set_state(ConnectionState.CONNECTING)
            try:
                response = await self.session.open(request)
            except AuthenticationRequired as challenge:
                self._set_state(ConnectionState.AUTHENTICATING)
                if count >= self.max_auth_attempts:
                    self._error(f"Digest authentication rejected after {count} attempts")
                    return
                count += 1
                try:
                    authorization = solve_challenge(
                        self.target.username,
                        self.target.password,
                        request.uri,
                        challenge.www_authenticate,
                        count,
                    )
                except DigestChallengeError as exc:
                    self._error(
                        "Error when building digest auth headers, please open an issue with this log: "
                        f"{exc}"
                    )
                    return
                request = request.with_authorization(authorization)
                self._debug(f"401 received and www-authenticate headers, sending digest auth. Count: {count}")
                continue
            except StreamHTTPError as exc:
                self._error(f"Status Code: {exc.status} Response: {exc.reason}")
                return
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                self._error(f"Didn't get a response from the NVR - {exc!r}")
                return

            self._set_state(ConnectionState.STREAMING)
            await self.session.consume(response)
            return

    # Internal ---------------------------------------------------------------
    async def _wait_reconnect(self) -> None:
        self._set_state(ConnectionState.RECONNECT_PENDING)
        self.channel.publish(
            Signal.RECONNECTING, f"Reconnecting to {self.host} in {self.reconnect_delay:g}s."
        )
        await asyncio.sleep(self.reconnect_delay)

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            self.log.debug("Stream %s: %s -> %s", self.host, self.state.value, state.value)
            self.state = state

    def _error(self, details: str) -> None:
        self.channel.publish(
            Signal.ERROR,
            StreamError(summary=f"Error received from host: {self.host}", details=f"Error Details: {details}"),
        )

    def _debug(self, message: str) -> None:
        self.channel.publish(Signal.DEBUG, message)


__all__ = ["ConnectionManager", "ConnectionState"]
