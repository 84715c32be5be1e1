"""
Dahua event-stream engine.

This package keeps a Digest-authenticated ``eventManager.cgi?action=attach``
stream open per NVR host, parses the pushed alarm records and republishes them
on a per-host EventChannel.
"""

from .connection import ConnectionManager, ConnectionState
from .digest_auth import AuthChallenge, build_digest_header, parse_www_authenticate, solve_challenge
from .event_channel import EventChannel, Signal
from .event_parser import ParsedRecord, parse_event_data
from .exceptions import AuthenticationRequired, DahuaAlertsError, DigestChallengeError, StreamHTTPError
from .models import AlarmAction, AlarmEvent, ConnectionTarget, StreamError
from .stream_session import StreamRequest, StreamSession

__all__ = [
    "AlarmAction",
    "AlarmEvent",
    "AuthChallenge",
    "AuthenticationRequired",
    "ConnectionManager",
    "ConnectionState",
    "ConnectionTarget",
    "DahuaAlertsError",
    "DigestChallengeError",
    "EventChannel",
    "ParsedRecord",
    "Signal",
    "StreamError",
    "StreamHTTPError",
    "StreamRequest",
    "StreamSession",
    "build_digest_header",
    "parse_event_data",
    "parse_www_authenticate",
    "solve_challenge",
]
