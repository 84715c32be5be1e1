import asyncio

import pytest
from aiohttp import web

from dahua.event_channel import EventChannel

MOTION_START = (
    b"--myboundary\r\n"
    b"Content-Type: text/plain\r\n"
    b"Content-Length:37\r\n\r\n"
    b"Code=VideoMotion;action=Start;index=0\r\n\r\n"
)


class RecordingChannel(EventChannel):
    def __init__(self, name="test"):
        super().__init__(name)
        self.published = []

    def publish(self, signal, payload):
        self.published.append((signal, payload))
        super().publish(signal, payload)

    def of(self, signal):
        return [payload for s, payload in self.published if s is signal]

    async def wait_for(self, signal, count=1, timeout=2.0):
        async def _poll():
            while len(self.of(signal)) < count:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout)
        return self.of(signal)


class FakeNVR:
    """aiohttp app imitating eventManager.cgi?action=attach."""

    def __init__(self):
        self.challenge = None
        self.status = 200
        self.chunks = [MOTION_START]
        self.hold = False
        self.requests = []
        self.request_times = []
        self._release = None

    def app(self) -> web.Application:
        self._release = asyncio.Event()
        app = web.Application()
        app.router.add_get("/cgi-bin/eventManager.cgi", self.attach)
        return app

    def release(self):
        if self._release is not None:
            self._release.set()

    async def attach(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(request)
        self.request_times.append(asyncio.get_running_loop().time())

        if self.challenge and "Authorization" not in request.headers:
            return web.Response(status=401, headers={"WWW-Authenticate": self.challenge})
        if self.status != 200:
            headers = {"WWW-Authenticate": self.challenge} if self.status == 401 and self.challenge else None
            return web.Response(status=self.status, text="nope", headers=headers)

        resp = web.StreamResponse(
            status=200, headers={"Content-Type": "multipart/x-mixed-replace; boundary=myboundary"}
        )
        await resp.prepare(request)
        for chunk in self.chunks:
            await resp.write(chunk)
        if self.hold:
            try:
                await asyncio.wait_for(self._release.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                pass
        return resp

    async def wait_for_requests(self, count, timeout=2.0):
        async def _poll():
            while len(self.requests) < count:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def fake_nvr():
    nvr = FakeNVR()
    yield nvr
    nvr.release()
