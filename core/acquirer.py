"""
Capability Acquirer

Loads the face engine and acquires the camera, concurrently, and releases
both at teardown. Initialization succeeds only if both succeed; on any
failure whatever was acquired is released before the error propagates.

Usage:
    acquirer = CapabilityAcquirer.from_config(get_config())
    engine, frame_source = await acquirer.initialize()
    ...
    await acquirer.teardown()
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple

import cv2

from core.camera import CameraFrameSource, CaptureConfig, open_camera
from core.engine import FaceEngine, guard_engine, load_engine
from core.errors import EngineLoadError, SessionClosed

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_MODULE = "core.mock_engine"


class CapabilityAcquirer:
    """
    Owns the engine handle and the camera stream for one session.

    Args:
        engine_module: Dotted path of the engine module.
        engine_config: The `engine` config section.
        capture_config: Camera constraints.
        capture_factory: cv2.VideoCapture or a test double.
        engine_loader: Callable (module_path, config) -> FaceEngine.
    """

    def __init__(
        self,
        engine_module: str = DEFAULT_ENGINE_MODULE,
        engine_config: Optional[Dict[str, Any]] = None,
        capture_config: Optional[CaptureConfig] = None,
        capture_factory: Callable[[int], Any] = cv2.VideoCapture,
        engine_loader: Callable[[str, Dict[str, Any]], FaceEngine] = load_engine,
    ):
        self.engine_module = engine_module
        self.engine_config = engine_config or {}
        self.capture_config = capture_config or CaptureConfig()
        self._capture_factory = capture_factory
        self._engine_loader = engine_loader

        self.engine: Optional[FaceEngine] = None
        self.frame_source: Optional[CameraFrameSource] = None
        self._init_task: Optional[asyncio.Task] = None
        self._teardown_requested = False

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> "CapabilityAcquirer":
        """Build from the full config dict (`engine` and `camera` sections)."""
        engine_config = config.get("engine", {}) or {}
        return cls(
            engine_module=engine_config.get("module", DEFAULT_ENGINE_MODULE),
            engine_config=engine_config,
            capture_config=CaptureConfig.from_dict(config.get("camera", {}) or {}),
            **kwargs,
        )

    @property
    def ready(self) -> bool:
        return self.engine is not None and self.frame_source is not None

    async def initialize(self) -> Tuple[FaceEngine, CameraFrameSource]:
        """
        Load the engine and open the camera.

        Returns:
            (engine, frame_source)

        Raises:
            EngineLoadError: Engine module, factory or model loading failed.
            CameraAccessError: Camera could not be opened or produced no frames.
            SessionClosed: teardown() was called before initialization finished.
        """
        if self.ready:
            return self.engine, self.frame_source
        if self._init_task is not None:
            raise RuntimeError("Initialization already in progress")

        self._teardown_requested = False
        task = asyncio.get_running_loop().create_task(self._acquire(), name="acquire-capabilities")
        self._init_task = task
        try:
            engine, frame_source = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._teardown_requested and (current is None or not current.cancelling()):
                raise SessionClosed("Session closed during initialization") from None
            raise
        finally:
            self._init_task = None

        self.engine, self.frame_source = engine, frame_source
        logger.info(f"Capabilities ready: camera {frame_source.dimensions}")
        return engine, frame_source

    async def _acquire(self) -> Tuple[FaceEngine, CameraFrameSource]:
        engine_task = asyncio.ensure_future(self._load_engine())
        camera_task = asyncio.ensure_future(
            open_camera(self.capture_config, capture_factory=self._capture_factory)
        )
        tasks = [engine_task, camera_task]
        # Completion order, so the earliest failure is the one reported
        finished = []
        for t in tasks:
            t.add_done_callback(finished.append)

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            await self._abandon(tasks)
            raise

        failed = [t for t in finished if not t.cancelled() and t.exception() is not None]
        if failed:
            await self._abandon(tasks)
            error = failed[0].exception()
            logger.error(f"Initialization failed: {error}")
            raise error

        return engine_task.result(), camera_task.result()

    async def _abandon(self, tasks) -> None:
        """Cancel unfinished tasks and release whatever finished successfully."""
        for t in tasks:
            t.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for result in results:
            if isinstance(result, CameraFrameSource):
                await asyncio.to_thread(result.stop)
            elif isinstance(result, FaceEngine):
                await self._close_engine(result)

    async def _load_engine(self) -> FaceEngine:
        engine = await asyncio.to_thread(self._engine_loader, self.engine_module, self.engine_config)
        if not self.engine_config.get("reentrant", False):
            engine = guard_engine(engine)

        try:
            await engine.load_models()
        except asyncio.CancelledError:
            await self._close_engine(engine)
            raise
        except Exception as e:
            await self._close_engine(engine)
            raise EngineLoadError(f"Model loading failed: {e}") from e

        return engine

    @staticmethod
    async def _close_engine(engine: FaceEngine) -> None:
        try:
            await engine.close()
        except Exception as e:
            logger.warning(f"Engine close failed: {e}")

    async def teardown(self) -> None:
        """
        Release the camera and the engine. Idempotent.

        Safe before, during, or after initialize(); an in-flight
        initialization is cancelled and its partial acquisitions released.
        """
        task = self._init_task
        if task is not None and not task.done():
            self._teardown_requested = True
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        source, self.frame_source = self.frame_source, None
        if source is not None:
            await asyncio.to_thread(source.stop)

        engine, self.engine = self.engine, None
        if engine is not None:
            await self._close_engine(engine)
            logger.info("Capabilities released")
