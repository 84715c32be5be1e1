# -*- coding: utf-8 -*-
"""
Target grouping: one ConnectionTarget per unique NVR host, and routing of
alarms back to configured camera names.
"""

import logging
from typing import Dict, List, Optional

from core.config import BridgeConfig, CameraConfig, CameraCredentials
from dahua.models import AlarmEvent, ConnectionTarget


def _credentials_for(cfg: BridgeConfig, camera: CameraConfig) -> Optional[CameraCredentials]:
    return camera.credentials or cfg.default_credentials


def group_targets(cfg: BridgeConfig) -> List[ConnectionTarget]:
    """
    Cameras sharing a host share one stream; their trigger event types are
    merged. Credentials come from the first camera seen for that host.
    """
    servers: Dict[str, CameraCredentials] = {}
    events: Dict[str, List[str]] = {}

    if cfg.default_credentials and cfg.default_credentials.host:
        servers[cfg.default_credentials.host] = cfg.default_credentials
        events[cfg.default_credentials.host] = []

    for camera in cfg.cameras:
        creds = _credentials_for(cfg, camera)
        if creds is None or not creds.host:
            continue
        servers.setdefault(creds.host, creds)
        codes = events.setdefault(creds.host, [])
        for code in camera.trigger_event_types:
            if code not in codes:
                codes.append(code)

    targets: List[ConnectionTarget] = []
    for host, creds in servers.items():
        if not events[host]:
            # default host with no camera using it
            continue
        targets.append(
            ConnectionTarget.create(host, creds.user, creds.password, creds.use_http, events[host])
        )
    return targets


class CameraRouter:
    """Map an AlarmEvent to the configured camera it belongs to."""

    def __init__(self, cfg: BridgeConfig):
        self.cfg = cfg
        self.log = logging.getLogger("CameraRouter")

    def camera_for(self, alarm: AlarmEvent) -> Optional[str]:
        for camera in self.cfg.cameras:
            if camera.index != alarm.index:
                continue
            if alarm.event_type not in camera.trigger_event_types:
                continue
            creds = _credentials_for(self.cfg, camera)
            if creds is not None and creds.host == alarm.host:
                return camera.name
        self.log.debug("No camera configured for %s index=%s on %s", alarm.event_type, alarm.index, alarm.host)
        return None
