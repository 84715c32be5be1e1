"""Value types shared by the Dahua event-stream engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Tuple

EVENTS_WATCH_PATH = "/cgi-bin/eventManager.cgi?action=attach&codes=[{codes}]"


class AlarmAction(str, Enum):
    START = "Start"
    STOP = "Stop"
    PULSE = "Pulse"
    UNKNOWN = ""

    @classmethod
    def parse(cls, raw: str) -> "AlarmAction":
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ConnectionTarget:
    """One unique NVR host plus the credentials and event codes to watch.

    ``use_http`` selects plain HTTP; otherwise HTTPS is used without
    certificate validation (cameras ship self-signed certificates).
    """

    host: str
    username: str
    password: str
    use_http: bool = False
    event_codes: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("ConnectionTarget requires a host")
        codes = tuple(dict.fromkeys(c for c in self.event_codes if c))
        if not codes:
            raise ValueError(f"ConnectionTarget {self.host} has no event codes to watch")
        object.__setattr__(self, "event_codes", codes)

    @classmethod
    def create(
        cls, host: str, username: str, password: str, use_http: bool, event_codes: Iterable[str]
    ) -> "ConnectionTarget":
        return cls(host, username, password, bool(use_http), tuple(event_codes))

    @property
    def scheme(self) -> str:
        return "http" if self.use_http else "https"

    @property
    def events_watch_path(self) -> str:
        return EVENTS_WATCH_PATH.format(codes=",".join(self.event_codes))

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}{self.events_watch_path}"

    def __repr__(self) -> str:
        # keep the password out of logs
        return (
            f"ConnectionTarget(host={self.host!r}, username={self.username!r}, "
            f"use_http={self.use_http}, event_codes={self.event_codes!r})"
        )


@dataclass(frozen=True)
class AlarmEvent:
    event_type: str
    action: AlarmAction
    index: int
    host: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type,
            "action": self.action.value,
            "index": self.index,
            "host": self.host,
        }


@dataclass(frozen=True)
class StreamError:
    summary: str
    details: str

    def __str__(self) -> str:
        return f"{self.summary}: {self.details}"
