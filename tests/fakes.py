"""
Test doubles shared by the test suite.

FakeCapture stands in for cv2.VideoCapture, FakeFrameSource for an opened
CameraFrameSource, and FakeEngine for an engine module's FaceEngine.
"""

import asyncio
import threading
import time
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock

import numpy as np

from core.engine import FaceEngine

DEFAULT_RESULT = {
    "encryptedFace": "cred-abc123",
    "metadata": {"createdAt": "2026-01-01T00:00:00+00:00", "modelVersion": "test-1"},
}


def make_frame(width: int = 640, height: int = 480, value: int = 80) -> np.ndarray:
    return np.full((height, width, 3), value, dtype=np.uint8)


class FakeCapture:
    """Minimal cv2.VideoCapture replacement."""

    def __init__(self, device_id=0, opened=True, frame=None, fail_reads=False):
        self.device_id = device_id
        self.opened = opened
        self.frame = make_frame() if frame is None else frame
        self.fail_reads = fail_reads
        self.props = {}
        self.release_count = 0
        self.release_threads: List[int] = []

    @property
    def released(self) -> bool:
        return self.release_count > 0

    def isOpened(self):
        return self.opened and not self.released

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def read(self):
        time.sleep(0.001)
        if self.fail_reads or self.released:
            return False, None
        return True, self.frame

    def release(self):
        self.release_count += 1
        self.release_threads.append(threading.get_ident())


class CaptureFactory:
    """Callable handing out FakeCaptures and remembering them."""

    def __init__(self, **capture_kwargs):
        self.capture_kwargs = capture_kwargs
        self.created: List[FakeCapture] = []

    def __call__(self, device_id):
        cap = FakeCapture(device_id, **self.capture_kwargs)
        self.created.append(cap)
        return cap

    @property
    def all_released(self) -> bool:
        return all(cap.released for cap in self.created)


class FakeFrameSource:
    """An already-open frame source with a fixed frame."""

    def __init__(self, width: int = 640, height: int = 480, has_frame: bool = True):
        self.frame = make_frame(width, height) if has_frame else None
        self.stopped = False
        self.stop_count = 0

    def has_frame(self) -> bool:
        return not self.stopped and self.frame is not None

    @property
    def dimensions(self) -> Optional[Tuple[int, int]]:
        if self.frame is None:
            return None
        h, w = self.frame.shape[:2]
        return w, h

    def current_frame(self):
        if self.stopped or self.frame is None:
            return None
        return self.frame.copy()

    def stop(self) -> None:
        self.stopped = True
        self.stop_count += 1


class FakeEngine(FaceEngine):
    """
    FaceEngine whose calls are AsyncMocks.

    Configure behaviour through the mocks, e.g.
    engine.register.side_effect = EngineRejection("No face detected").
    """

    def __init__(self, connections=((0, 1),), points=((10.0, 20.0), (30.0, 40.0))):
        self._connections = list(connections)
        self.load = AsyncMock()
        self.register = AsyncMock(return_value=dict(DEFAULT_RESULT))
        self.verify = AsyncMock(return_value=True)
        self.landmarks = AsyncMock(return_value=list(points))
        self.closer = AsyncMock()

    @property
    def face_connections(self):
        return self._connections

    async def load_models(self):
        await self.load()

    async def register_face(self, identifiers, frame_source):
        return await self.register(identifiers, frame_source)

    async def verify_face(self, credential, identifiers, frame_source):
        return await self.verify(credential, identifiers, frame_source)

    async def detect_landmarks(self, frame_source):
        return await self.landmarks(frame_source)

    async def close(self):
        await self.closer()


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll predicate on the event loop until it holds or timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()
