"""
dahua.event_parser

Parser for the text records pushed by ``eventManager.cgi?action=attach``.

A chunk of the stream looks like::

    --myboundary
    Content-Type: text/plain
    Content-Length:36

    Code=VideoMotion;action=Stop;index=0

or, on newer firmwares, with a JSON trailer::

    Code=VideoMotion;action=Stop;index=5;data={
    "SmartMotionEnable" : false
    }

Only lines carrying a ``;`` are records. When one chunk holds several records
the last one is returned.
"""

import logging
from typing import Dict, NamedTuple, Optional, Union

logger = logging.getLogger(__name__)

SENTINEL_INDEX = -999


class ParsedRecord(NamedTuple):
    """Fields extracted from one record line.

    Attributes:
        action: raw action value (``Start``, ``Stop``, ``Pulse``...)
        index: channel index, ``SENTINEL_INDEX`` when absent or nothing was parsed
        event_type: event code, e.g. ``VideoMotion``
    """

    action: str
    index: int
    event_type: str

    @property
    def is_empty(self) -> bool:
        return self.index == SENTINEL_INDEX and not self.event_type and not self.action


EMPTY_RECORD = ParsedRecord(action="", index=SENTINEL_INDEX, event_type="")


def _split_fields(line: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for token in line.split(";"):
        key, sep, value = token.partition("=")
        if not sep:
            continue
        fields[key.strip()] = value.strip()
    return fields


def _parse_line(line: str) -> ParsedRecord:
    fields = _split_fields(line)
    return ParsedRecord(
        action=fields["action"],
        index=int(fields["index"]) if "index" in fields else SENTINEL_INDEX,
        event_type=fields["Code"],
    )


def parse_event_data(
    data: Union[str, bytes], log: Optional[logging.Logger] = None
) -> ParsedRecord:
    """Extract the alarm record from one raw chunk.

    Never raises: malformed input is reported at debug level and the empty
    record (``action=""``, ``index=-999``, ``event_type=""``) is returned.
    """
    log = log or logger
    record = EMPTY_RECORD
    try:
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        for line in text.split("\n"):
            if ";" in line:
                record = _parse_line(line.strip())
    except Exception:
        log.debug("Could not parse event data: %r", data)
        return EMPTY_RECORD
    return record


__all__ = ["EMPTY_RECORD", "ParsedRecord", "SENTINEL_INDEX", "parse_event_data"]
