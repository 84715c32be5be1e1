import logging
import sys
from typing import Optional

from dahua.event_channel import EventChannel, Signal
from dahua.models import AlarmEvent, StreamError


def setup_logging(level: str = "INFO", stream=None) -> logging.Logger:
    log_level = getattr(logging, str(level).upper(), logging.INFO)
    fmt = "%(asctime)s | %(levelname)-5s | %(name)-20s | %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(fmt, datefmt))

    root = logging.getLogger()
    root.setLevel(log_level)
    root.addHandler(handler)
    # aiohttp access/client chatter is only useful when debugging
    logging.getLogger("aiohttp").setLevel(max(log_level, logging.WARNING))
    return root


def log_channel(channel: EventChannel, logger: Optional[logging.Logger] = None) -> logging.Logger:
    """Write a target's signals to ``logger``; callers filter by log level."""
    log = logger or logging.getLogger(f"dahua.{channel.name or 'stream'}")

    def on_error(error: StreamError):
        log.error("%s (for more info enable debug logging)", error.summary)
        log.debug("%s", error.details)

    def on_alarm(alarm: AlarmEvent):
        log.info("Alarm %s %s on index %s from %s", alarm.event_type, alarm.action.value or "?", alarm.index, alarm.host)

    channel.subscribe(Signal.ERROR, on_error)
    channel.subscribe(Signal.ALARM, on_alarm)
    channel.subscribe(Signal.DEBUG, log.debug)
    channel.subscribe(Signal.RECONNECTING, log.debug)
    return log
