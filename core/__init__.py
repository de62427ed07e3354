"""
Core Module for the Face Session Controller

This package contains the session orchestration and live-rendering
subsystem for face registration and verification.

Main components:
    - config: Configuration loading and management
    - camera: Webcam frame source
    - engine: Face engine interface and module loader
    - acquirer: Engine/camera acquisition and teardown
    - detection_loop: Live landmark detection and overlay rendering
    - pipeline: Register/verify request pipeline
    - session: Registration/verification state machine
    - controller: Lifecycle object composing all of the above

Engine modules (selected by config `engine.module`):
    - mock_engine: Simulated engine for development
    - remote_engine: HTTP face service + MediaPipe landmarks

Usage:
    from core.config import get_config
    from core.controller import FaceAuthController
"""

from core.config import (
    get_config,
    get_section,
    get_camera_config,
    get_engine_config,
    get_detection_loop_config,
    get_session_config,
    get_ui_config,
    configure_logging,
)

from core.errors import (
    FaceAuthError,
    EngineLoadError,
    CameraAccessError,
    ValidationError,
    NoFaceDetected,
    OperationFailure,
    InvalidTransition,
    SessionClosed,
    EngineRejection,
)

from core.camera import CameraFrameSource, CaptureConfig, open_camera
from core.engine import FaceEngine, SerializedEngine, guard_engine, load_engine
from core.acquirer import CapabilityAcquirer
from core.overlay import OverlaySurface
from core.detection_loop import FrameClock, LiveDetectionLoop
from core.prefill import PrefillCache, PrefillEntry
from core.notifications import Notifier, Notification
from core.pipeline import (
    RequestPipeline,
    RegistrationOutcome,
    RegistrationMetadata,
    parse_identifiers,
)
from core.session import SessionStateMachine, SessionView, Flow, Stage
from core.controller import FaceAuthController

__all__ = [
    # Configuration
    "get_config",
    "get_section",
    "get_camera_config",
    "get_engine_config",
    "get_detection_loop_config",
    "get_session_config",
    "get_ui_config",
    "configure_logging",
    # Errors
    "FaceAuthError",
    "EngineLoadError",
    "CameraAccessError",
    "ValidationError",
    "NoFaceDetected",
    "OperationFailure",
    "InvalidTransition",
    "SessionClosed",
    "EngineRejection",
    # Capabilities
    "CameraFrameSource",
    "CaptureConfig",
    "open_camera",
    "FaceEngine",
    "SerializedEngine",
    "guard_engine",
    "load_engine",
    "CapabilityAcquirer",
    # Live rendering
    "OverlaySurface",
    "FrameClock",
    "LiveDetectionLoop",
    # Session
    "PrefillCache",
    "PrefillEntry",
    "Notifier",
    "Notification",
    "RequestPipeline",
    "RegistrationOutcome",
    "RegistrationMetadata",
    "parse_identifiers",
    "SessionStateMachine",
    "SessionView",
    "Flow",
    "Stage",
    "FaceAuthController",
]
