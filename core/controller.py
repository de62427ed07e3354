"""
Face session controller.

Composes the capability acquirer, live detection loop, request pipeline and
session state machine into one lifecycle object:

    controller = FaceAuthController(get_config())
    await controller.start()            # acquire + start the detection loop
    controller.session.start_registration()
    await controller.session.submit_registration()
    await controller.close()            # stop the loop, release everything

Or as an async context manager:

    async with FaceAuthController(config) as controller:
        ...
"""

import logging
from typing import Any, Dict, Optional

import numpy as np

from core.acquirer import CapabilityAcquirer
from core.config import get_config
from core.detection_loop import FrameClock, LiveDetectionLoop
from core.errors import CameraAccessError, EngineLoadError, InvalidTransition, SessionClosed
from core.notifications import Notifier
from core.overlay import OverlaySurface
from core.pipeline import RequestPipeline
from core.prefill import PrefillCache
from core.session import SessionStateMachine

logger = logging.getLogger(__name__)


class FaceAuthController:
    """
    Top-level lifecycle for one face authentication session.

    Attributes:
        acquirer: Engine/camera owner.
        detection_loop: Live landmark overlay task.
        surface: Overlay render target.
        pipeline: Register/verify request pipeline.
        session: State machine the UI drives.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        acquirer: Optional[CapabilityAcquirer] = None,
    ):
        if config is None:
            config = get_config()
        self.config = config

        camera_config = config.get("camera", {}) or {}
        loop_config = config.get("detection_loop", {}) or {}
        session_config = config.get("session", {}) or {}
        expiry = float(session_config.get("notification_expiry_sec", 5.0))

        self.acquirer = acquirer or CapabilityAcquirer.from_config(config)
        self.surface = OverlaySurface(
            width=int(camera_config.get("width", 640)),
            height=int(camera_config.get("height", 480)),
            marker_radius=int(loop_config.get("marker_radius", 1)),
            marker_color=tuple(loop_config.get("marker_color", (0, 255, 0))),
            edge_color=tuple(loop_config.get("edge_color", (0, 200, 255))),
            edge_thickness=int(loop_config.get("edge_thickness", 1)),
        )
        self.detection_loop = LiveDetectionLoop(
            FrameClock(float(loop_config.get("target_fps", 15))),
            failure_log_every=int(loop_config.get("failure_log_every", 50)),
        )
        self.pipeline = RequestPipeline(
            min_register_identifiers=int(session_config.get("min_register_identifiers", 2)),
            min_verify_identifiers=int(session_config.get("min_verify_identifiers", 1)),
        )
        self.notifier = Notifier(expiry)
        self.session = SessionStateMachine(
            self.pipeline,
            prefill=PrefillCache(),
            notifier=self.notifier,
            surface=self.surface,
            notification_expiry_sec=expiry,
            identifiers_text=session_config.get("default_identifiers", ""),
        )
        self._closed = False

    @property
    def ready(self) -> bool:
        return self.pipeline.ready and self.detection_loop.running

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> bool:
        """
        Acquire the engine and camera and start the detection loop.

        A fatal initialization error is recorded on the session rather than
        raised; call retry() to try again.

        Returns:
            True if the session is ready.
        """
        if self._closed:
            raise SessionClosed("Controller has been closed")

        try:
            engine, frame_source = await self.acquirer.initialize()
        except (EngineLoadError, CameraAccessError) as e:
            self.session.fail_initialization(e)
            return False
        except SessionClosed:
            logger.info("Start abandoned: controller closed during initialization")
            return False

        if self._closed:
            await self.acquirer.teardown()
            return False

        self.session.clear_fatal_error()
        self.pipeline.bind(engine)
        self.session.attach(frame_source)
        self.detection_loop.start(engine, frame_source, self.surface)
        logger.info("Face session ready")
        return True

    async def retry(self) -> bool:
        """
        Release everything and initialize again.

        Raises:
            InvalidTransition: A register/verify request is still processing.
        """
        if self.session.processing:
            raise InvalidTransition("Cannot retry while a request is processing")
        await self._release()
        return await self.start()

    async def _release(self) -> None:
        await self.detection_loop.stop()
        self.pipeline.unbind()
        self.session.detach()
        await self.acquirer.teardown()

    async def close(self) -> None:
        """Stop the loop and release the camera and engine. Idempotent."""
        self._closed = True
        await self._release()
        self.notifier.close()

    def preview(self) -> Optional[np.ndarray]:
        """Latest camera frame, mirrored, with the landmark overlay; None if no frame."""
        source = self.acquirer.frame_source
        frame = source.current_frame() if source is not None else None
        if frame is None:
            return None
        return self.surface.compose(frame)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
