"""
Camera frame source for the face session controller.

Opens the webcam with the configured constraints and keeps the most recent
frame available to the detection loop and the engine. A background reader
thread pulls frames from OpenCV; consumers only ever receive copies.

Usage:
    from core.camera import open_camera, CaptureConfig

    source = await open_camera(CaptureConfig(width=640, height=480))
    frame = source.current_frame()
    source.stop()
"""

import asyncio
import base64
import logging
import threading
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Optional, Tuple

import cv2
import numpy as np

from core.errors import CameraAccessError

logger = logging.getLogger(__name__)


@dataclass
class CaptureConfig:
    """Constraints for webcam capture."""
    width: int = 640
    height: int = 480
    fps: int = 30
    device_id: int = 0
    facing_mode: str = "user"
    environment_device_id: int = 1
    metadata_timeout_sec: float = 5.0

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "CaptureConfig":
        """Build from the `camera` config section, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config.items() if k in known})

    @property
    def resolved_device_id(self) -> int:
        """Device index selected by the facing mode."""
        if self.facing_mode == "environment":
            return self.environment_device_id
        return self.device_id


class CameraFrameSource:
    """
    A live frame source backed by cv2.VideoCapture.

    This component handles:
    - Opening the device with width/height/fps constraints
    - Continuously reading frames on a reader thread
    - Exposing readiness and frame dimensions
    - Stopping the reader and releasing the device
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        capture_factory: Callable[[int], Any] = cv2.VideoCapture,
    ):
        self.config = config or CaptureConfig()
        self._capture_factory = capture_factory
        self._cap = None
        self._reader: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._metadata_event = threading.Event()
        self._latest: Optional[np.ndarray] = None
        self._dimensions: Optional[Tuple[int, int]] = None
        self._stopped = False

    def open(self) -> None:
        """
        Open the camera device and start the reader thread.

        Raises:
            CameraAccessError: If the device cannot be opened.
        """
        if self._stopped:
            raise CameraAccessError("Frame source has already been stopped")

        device_id = self.config.resolved_device_id
        cap = self._capture_factory(device_id)

        if not cap.isOpened():
            cap.release()
            raise CameraAccessError(
                f"Could not open camera {device_id} (no device or permission denied)"
            )

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        cap.set(cv2.CAP_PROP_FPS, self.config.fps)

        with self._lock:
            # stop() may have run while the device was opening
            if self._stopped:
                cap.release()
                raise CameraAccessError("Frame source stopped while opening")
            self._cap = cap
            self._reader = threading.Thread(
                target=self._read_frames, name=f"camera-{device_id}", daemon=True
            )
            self._reader.start()
        logger.info(
            f"Opened camera {device_id} at {self.config.width}x{self.config.height} "
            f"(facing_mode={self.config.facing_mode})"
        )

    def _read_frames(self) -> None:
        """Reader thread body: keep the latest decodable frame."""
        while not self._stop_event.is_set():
            ret, frame = self._cap.read()
            if not ret or frame is None:
                # Device hiccup; back off briefly instead of spinning
                self._stop_event.wait(0.01)
                continue

            h, w = frame.shape[:2]
            with self._lock:
                self._latest = frame
                self._dimensions = (w, h)
            self._metadata_event.set()

    def wait_for_metadata(self, timeout: Optional[float] = None) -> Tuple[int, int]:
        """
        Block until the first frame has arrived and its dimensions are known.

        Args:
            timeout: Seconds to wait. Defaults to config.metadata_timeout_sec.

        Returns:
            (width, height) of the incoming frames.

        Raises:
            CameraAccessError: If no frame arrives in time or the source stops.
        """
        if timeout is None:
            timeout = self.config.metadata_timeout_sec

        if not self._metadata_event.wait(timeout) or self._stopped:
            raise CameraAccessError(
                f"Camera produced no frames within {timeout:.1f}s"
            )

        return self.dimensions

    def has_frame(self) -> bool:
        """True if a decodable frame is currently available."""
        with self._lock:
            return not self._stopped and self._latest is not None

    @property
    def dimensions(self) -> Optional[Tuple[int, int]]:
        """(width, height) of the latest frame, or None before the first one."""
        with self._lock:
            return self._dimensions

    def current_frame(self) -> Optional[np.ndarray]:
        """Return a copy of the latest BGR frame, or None."""
        with self._lock:
            if self._stopped or self._latest is None:
                return None
            return self._latest.copy()

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        """Stop the reader thread and release the device. Idempotent."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._latest = None

        self._stop_event.set()
        # Wake anyone still waiting for metadata
        self._metadata_event.set()

        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=1.0)
            if self._reader.is_alive():
                logger.warning("Camera reader thread did not exit within 1s")
        self._reader = None

        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera released")

    @staticmethod
    def frame_to_base64(frame: np.ndarray, quality: int = 85) -> str:
        """
        Encode a frame as base64 JPEG for transmission.

        Raises:
            ValueError: If encoding fails.
        """
        success, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
        if not success:
            raise ValueError("Failed to encode frame")
        return base64.b64encode(buffer).decode("utf-8")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False


async def open_camera(
    config: Optional[CaptureConfig] = None,
    capture_factory: Callable[[int], Any] = cv2.VideoCapture,
) -> CameraFrameSource:
    """
    Acquire a live frame source and wait for frame metadata.

    The device is released on every failure path, including cancellation.

    Raises:
        CameraAccessError: If the device cannot be opened or never yields a frame.
    """
    source = CameraFrameSource(config, capture_factory=capture_factory)
    try:
        await asyncio.to_thread(source.open)
        await asyncio.to_thread(source.wait_for_metadata)
    except CameraAccessError:
        await asyncio.to_thread(source.stop)
        raise
    except BaseException as e:
        await asyncio.to_thread(source.stop)
        if isinstance(e, Exception):
            raise CameraAccessError(f"Camera acquisition failed: {e}") from e
        raise
    return source
