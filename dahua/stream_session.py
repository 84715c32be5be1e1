"""Dahua eventManager stream session.

Issues ``GET /cgi-bin/eventManager.cgi?action=attach&codes=[...]`` against one
host and feeds the unbounded ``multipart/x-mixed-replace`` body to the record
parser, publishing alarms on the target's EventChannel.
"""
from __future__ import annotations

import asyncio
import json
import logging
import ssl
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

import aiohttp
from yarl import URL

from .event_channel import EventChannel, Signal
from .event_parser import parse_event_data
from .exceptions import AuthenticationRequired, StreamHTTPError
from .models import AlarmAction, AlarmEvent, ConnectionTarget

ACCEPT = "multipart/x-mixed-replace"

TLS_VERSIONS = {
    "TLSv1": ssl.TLSVersion.TLSv1,
    "TLSv1.1": ssl.TLSVersion.TLSv1_1,
    "TLSv1.2": ssl.TLSVersion.TLSv1_2,
    "TLSv1.3": ssl.TLSVersion.TLSv1_3,
}


@dataclass(frozen=True)
class StreamRequest:
    """Immutable request configuration for one connection attempt."""

    url: str
    uri: str
    authorization: Optional[str] = None

    @classmethod
    def for_target(cls, target: ConnectionTarget) -> "StreamRequest":
        return cls(url=target.url, uri=target.events_watch_path)

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Accept": ACCEPT}
        if self.authorization:
            headers["Authorization"] = self.authorization
        return headers

    def with_authorization(self, authorization: str) -> "StreamRequest":
        return replace(self, authorization=authorization)


def build_ssl_context(min_version: str = "TLSv1") -> ssl.SSLContext:
    """TLS context for NVRs: no certificate validation, legacy protocol floor.

    Below TLSv1.2 the OpenSSL security level is dropped to 0, otherwise
    OpenSSL 3 refuses TLSv1/TLSv1.1 handshakes whatever ``minimum_version`` says.
    """
    if min_version not in TLS_VERSIONS:
        raise ValueError(f"unknown TLS version {min_version!r}, expected one of {sorted(TLS_VERSIONS)}")
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    # Old NVR firmwares only speak TLSv1; Python >= 3.10 warns about this floor.
    ctx.minimum_version = TLS_VERSIONS[min_version]
    if TLS_VERSIONS[min_version] < ssl.TLSVersion.TLSv1_2:
        ctx.set_ciphers("DEFAULT:@SECLEVEL=0")
    return ctx


class StreamSession:
    """Owns the HTTP connection pool for one ConnectionTarget."""

    def __init__(
        self,
        target: ConnectionTarget,
        channel: EventChannel,
        pool_size: int = 1,
        connect_timeout: Optional[float] = 10.0,
        read_timeout: Optional[float] = None,
        tls_min_version: str = "TLSv1",
        logger: Optional[logging.Logger] = None,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ) -> None:
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        self.target = target
        self.channel = channel
        self.pool_size = pool_size
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.log = logger or logging.getLogger(__name__)
        self._session_factory = session_factory or self._default_session
        self._session: Optional[aiohttp.ClientSession] = None

        self._ssl_context: Optional[ssl.SSLContext] = None
        if not target.use_http:
            self._ssl_context = build_ssl_context(tls_min_version)
            self.log.warning(
                "Certificate validation is disabled for %s (minimum TLS version %s)",
                target.host,
                tls_min_version,
            )

    @property
    def host(self) -> str:
        return self.target.host

    # Session lifecycle -------------------------------------------------------
    def _default_session(self) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            limit=self.pool_size,
            limit_per_host=self.pool_size,
            ssl=self._ssl_context if self._ssl_context is not None else True,
            keepalive_timeout=15.0,
        )
        timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=self.connect_timeout, sock_read=self.read_timeout
        )
        return aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers={"Connection": "Keep-Alive"}
        )

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = self._session_factory()
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # Public API -------------------------------------------------------------
    async def open(self, request: StreamRequest) -> aiohttp.ClientResponse:
        """Send the attach request and return the streaming response.

        Raises AuthenticationRequired on a Digest challenge, StreamHTTPError on
        any other non-2xx status; transport errors propagate unchanged.
        """
        # sent as-is so the request line matches the digest uri
        response = await self._client().get(URL(request.url, encoded=True), headers=request.headers)

        if response.status == 401:
            www_auth = response.headers.get("WWW-Authenticate")
            await response.release()
            if www_auth:
                raise AuthenticationRequired(www_auth)
            raise StreamHTTPError(response.status, response.reason or "")

        if not 200 <= response.status < 300:
            await response.release()
            raise StreamHTTPError(response.status, response.reason or "")

        self._debug(f"Successfully connected and listening to host: {self.host}")
        self._debug(
            f"Connection response received for host: {self.host} "
            f"{json.dumps(dict(response.headers))} {json.dumps(response.reason)} {response.status}"
        )
        return response

    async def consume(self, response: aiohttp.ClientResponse) -> None:
        """Read the body until the server closes it or the transport fails."""
        try:
            async for chunk in response.content.iter_any():
                if chunk:
                    self.handle_chunk(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            self._debug(f"Socket connection errored on host: {self.host}, error received: {exc!r}")
        else:
            self._debug(f"Socket connection ended on host: {self.host}")
        finally:
            response.close()

    def handle_chunk(self, chunk: bytes) -> Optional[AlarmEvent]:
        text = chunk.decode("utf-8", errors="replace")
        self._debug(f"Response received on host: {self.host}: {text}")
        record = parse_event_data(text, self.log)
        if record.is_empty:
            self._debug(f"No alarm record in chunk from host: {self.host}")
            return None

        alarm = AlarmEvent(
            event_type=record.event_type,
            action=AlarmAction.parse(record.action),
            index=record.index,
            host=self.host,
        )
        self.channel.publish(Signal.ALARM, alarm)
        return alarm

    def _debug(self, message: str) -> None:
        self.channel.publish(Signal.DEBUG, message)


__all__ = ["StreamRequest", "StreamSession", "build_ssl_context"]
