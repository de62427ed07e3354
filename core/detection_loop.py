"""
Live detection loop.

A perpetual, cancellable per-frame task: fetch landmarks for the current
camera frame and render them onto the overlay surface. It runs from session
start to teardown, independently of the registration/verification stages.
Per-cycle failures are logged and swallowed; they never stop the loop.

Usage:
    loop = LiveDetectionLoop(FrameClock(target_fps=15))
    loop.start(engine, frame_source, surface)
    ...
    await loop.stop()
"""

import asyncio
import logging
import time
from typing import Optional

from core.overlay import OverlaySurface

logger = logging.getLogger(__name__)


class FrameClock:
    """
    Paces the loop at a target frame rate.

    tick() sleeps for whatever is left of the frame interval since the
    previous tick; it always yields to the event loop at least once.
    """

    def __init__(self, target_fps: float = 15.0):
        if target_fps <= 0:
            raise ValueError(f"target_fps must be positive, got {target_fps}")
        self.interval = 1.0 / target_fps
        self._last: Optional[float] = None

    async def tick(self) -> None:
        now = time.monotonic()
        delay = 0.0
        if self._last is not None:
            delay = max(0.0, self.interval - (now - self._last))
        await asyncio.sleep(delay)
        self._last = time.monotonic()


class LiveDetectionLoop:
    """
    Continuously detects landmarks and renders the overlay.

    Attributes:
        cycles: Number of completed cycles (including skipped and failed ones).
        failures: Number of cycles whose detection or render raised.
    """

    def __init__(self, clock: Optional[FrameClock] = None, failure_log_every: int = 50):
        self.clock = clock or FrameClock()
        self.failure_log_every = max(1, failure_log_every)
        self.cycles = 0
        self.failures = 0
        self._consecutive_failures = 0
        self._task: Optional[asyncio.Task] = None
        self._engine = None
        self._frame_source = None
        self._surface: Optional[OverlaySurface] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, engine, frame_source, surface: OverlaySurface) -> None:
        """
        Start the per-frame task on the running event loop.

        Raises:
            RuntimeError: If the loop is already running.
        """
        if self.running:
            raise RuntimeError("Detection loop already running")

        self._engine = engine
        self._frame_source = frame_source
        self._surface = surface
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="live-detection-loop"
        )
        logger.info("Live detection loop started")

    async def _run(self) -> None:
        while True:
            await self.run_cycle()
            self.cycles += 1
            await self.clock.tick()

    async def run_cycle(self) -> bool:
        """
        Execute one detection/render cycle.

        Returns:
            True if a landmark frame was rendered.
        """
        source = self._frame_source
        if source is None or not source.has_frame():
            return False

        dims = source.dimensions
        if dims is None:
            return False
        width, height = dims

        try:
            if self._surface.resize(width, height):
                logger.debug(f"Overlay resized to {width}x{height}")

            points = await self._engine.detect_landmarks(source)
            self._surface.render(points, self._engine.face_connections, frame_width=width)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_failure(e)
            return False

        self._consecutive_failures = 0
        return True

    def _record_failure(self, error: Exception) -> None:
        self.failures += 1
        self._consecutive_failures += 1
        if self._consecutive_failures == 1 or self._consecutive_failures % self.failure_log_every == 0:
            logger.warning(
                f"Landmark detection failed ({self._consecutive_failures} in a row): {error}"
            )
        logger.debug("Landmark detection failure", exc_info=error)

    async def stop(self) -> None:
        """Cancel the pending cycle and wait for the task to finish. Idempotent."""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._frame_source = None
        logger.info(f"Live detection loop stopped after {self.cycles} cycles")
