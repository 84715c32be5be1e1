import logging
from typing import Optional
from urllib.parse import quote

import aiohttp
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.metrics import BridgeMetrics
from core.targets import CameraRouter
from dahua.models import AlarmAction, AlarmEvent


class MotionNotifier:
    """Relay Start/Stop alarms to homebridge-camera-ffmpeg's motion HTTP API."""

    def __init__(
        self,
        router: CameraRouter,
        port: int,
        metrics: Optional[BridgeMetrics] = None,
        logger: Optional[logging.Logger] = None,
        base_url: Optional[str] = None,
    ):
        self.router = router
        self.base_url = base_url or f"http://localhost:{port}"
        self.metrics = metrics
        self.log = logger or logging.getLogger(__name__)

    def motion_url(self, camera_name: str) -> str:
        return f"{self.base_url}/motion?{quote(camera_name)}"

    def reset_motion_url(self, camera_name: str) -> str:
        return f"{self.base_url}/motion/reset?{quote(camera_name)}"

    async def handle_alarm(self, alarm: AlarmEvent) -> Optional[str]:
        """Channel subscriber; returns the URL that was posted, if any."""
        camera_name = self.router.camera_for(alarm)
        if not camera_name:
            return None

        if alarm.action is AlarmAction.START:
            self.log.debug("%s detected on index: %s, mapped to camera %s", alarm.event_type, alarm.index, camera_name)
            url, what = self.motion_url(camera_name), "motion"
        elif alarm.action is AlarmAction.STOP:
            self.log.debug("%s ended on index: %s, mapped to camera %s", alarm.event_type, alarm.index, camera_name)
            url, what = self.reset_motion_url(camera_name), "reset motion"
        else:
            return None

        try:
            body = await self._post(url)
            self.log.info("%s %s for %s posted to homebridge-camera-ffmpeg, received %s", alarm.event_type, what, camera_name, body)
            if self.metrics:
                self.metrics.motion_posted(alarm.host)
        except Exception as e:
            self.log.error("Error when posting %s to homebridge-camera-ffmpeg for %s: %s", what, camera_name, e)
            if self.metrics:
                self.metrics.motion_failed(alarm.host)
        return url

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(aiohttp.ClientConnectionError),
        reraise=True,
    )
    async def _post(self, url: str) -> str:
        async with aiohttp.ClientSession() as session:
            async with session.post(url) as resp:
                txt = await resp.text()
                if resp.status >= 400:
                    self.log.error("homebridge-camera-ffmpeg error %s: %s", resp.status, txt)
                    resp.raise_for_status()
                return txt
