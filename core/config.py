from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from dahua.exceptions import DahuaAlertsError


class ConfigError(DahuaAlertsError):
    """Configuration is missing required values"""

    def __init__(self, problems: List[str]):
        super().__init__("; ".join(problems))
        self.problems = problems


class CameraCredentials:
    def __init__(self, data: dict):
        self.host = data.get("host")
        self.user = data.get("user")
        self.password = data.get("pass")
        self.use_http = bool(data.get("useHttp", False))

    def problems(self) -> List[str]:
        if not self.host:
            return ["host not set!"]
        if not self.user:
            return ["user not set!"]
        if not self.password:
            return ["pass not set!"]
        return []


class CameraConfig:
    def __init__(self, data: dict):
        self.name = data.get("cameraName")
        self.index = data.get("index")
        self.trigger_event_types: List[str] = list(data.get("triggerEventTypes") or [])
        creds = data.get("cameraCredentials")
        self.credentials: Optional[CameraCredentials] = CameraCredentials(creds) if creds else None


class BridgeConfig:
    """Plugin-style configuration: default NVR credentials plus a camera list."""

    def __init__(self, cfg: Dict[str, Any]):
        cfg = cfg or {}
        self.motion_port = cfg.get("homebridgeCameraFfmpegHttpPort")
        self.default_credentials: Optional[CameraCredentials] = None
        if cfg.get("host") or cfg.get("user") or cfg.get("pass"):
            self.default_credentials = CameraCredentials(cfg)
        self.cameras = [CameraConfig(c or {}) for c in cfg.get("cameras") or []]

        b = cfg.get("bridge", {}) or {}
        self.log_level = b.get("log_level", "INFO")
        self.reconnect_delay = float(b.get("reconnect_delay", 10))
        self.pool_size = int(b.get("pool_size", 1))
        self.max_auth_attempts = int(b.get("max_auth_attempts", 5))
        self.connect_timeout = float(b.get("connect_timeout", 10))
        read_timeout = b.get("read_timeout")
        self.read_timeout = float(read_timeout) if read_timeout else None
        self.tls_min_version = b.get("tls_min_version", "TLSv1")
        self.health_host = b.get("health_host", "0.0.0.0")
        self.health_port = int(b.get("health_port") or 0)

    @classmethod
    def load(cls, path: Path) -> "BridgeConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls(data)

    def problems(self) -> List[str]:
        if not self.motion_port:
            return ["homebridge-camera-ffmpeg http port not set in config!"]
        if not self.cameras:
            return ["no cameras configured!"]
        if self.default_credentials and self.default_credentials.problems():
            return self.default_credentials.problems()

        problems: List[str] = []
        for camera in self.cameras:
            if not camera.name or camera.index is None:
                problems.append("no camera name or index set!")
            elif not camera.trigger_event_types:
                problems.append(f"no trigger event types for camera {camera.name}!")
            elif camera.credentials and camera.credentials.problems():
                problems.extend(camera.credentials.problems())
            elif not camera.credentials and not self.default_credentials:
                problems.append(f"camera {camera.name} has no cameraCredentials and no default host is set!")
        return problems

    def validate(self) -> "BridgeConfig":
        problems = self.problems()
        if problems:
            raise ConfigError(problems)
        return self

    def session_options(self) -> Dict[str, Any]:
        return {
            "pool_size": self.pool_size,
            "connect_timeout": self.connect_timeout,
            "read_timeout": self.read_timeout,
            "tls_min_version": self.tls_min_version,
        }
