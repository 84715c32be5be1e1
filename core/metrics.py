# -*- coding: utf-8 -*-
"""
Bridge metrics: per-host counters fed from EventChannel signals, exported as JSON.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from dahua.event_channel import EventChannel, Signal


def _now() -> datetime:
    return datetime.now(timezone.utc)


class HostMetrics:
    def __init__(self):
        self.alarms = 0
        self.errors = 0
        self.reconnects = 0
        self.motion_posted = 0
        self.motion_failed = 0
        self.last_alarm_time: Optional[datetime] = None
        self.last_error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "alarms": self.alarms,
            "errors": self.errors,
            "reconnects": self.reconnects,
            "motion": {"posted": self.motion_posted, "failed": self.motion_failed},
            "last_alarm_time": self.last_alarm_time.isoformat() if self.last_alarm_time else None,
            "last_error": self.last_error,
        }


class BridgeMetrics:
    def __init__(self):
        self.start_time = _now()
        self.hosts: Dict[str, HostMetrics] = {}

    def host(self, host: str) -> HostMetrics:
        return self.hosts.setdefault(host, HostMetrics())

    def attach(self, host: str, channel: EventChannel) -> None:
        """Count signals published on ``channel`` under ``host``."""
        stats = self.host(host)

        def on_alarm(_alarm):
            stats.alarms += 1
            stats.last_alarm_time = _now()

        def on_error(error):
            stats.errors += 1
            stats.last_error = str(error)

        def on_reconnecting(_message):
            stats.reconnects += 1

        channel.subscribe(Signal.ALARM, on_alarm)
        channel.subscribe(Signal.ERROR, on_error)
        channel.subscribe(Signal.RECONNECTING, on_reconnecting)

    def motion_posted(self, host: str) -> None:
        self.host(host).motion_posted += 1

    def motion_failed(self, host: str) -> None:
        self.host(host).motion_failed += 1

    @property
    def uptime_seconds(self) -> float:
        return (_now() - self.start_time).total_seconds()

    def to_dict(self) -> Dict:
        return {
            "start_time": self.start_time.isoformat(),
            "uptime_seconds": int(self.uptime_seconds),
            "alarms_total": sum(h.alarms for h in self.hosts.values()),
            "hosts": {name: h.to_dict() for name, h in self.hosts.items()},
        }
