"""
Face engine interface.

The engine is the external face-processing capability: model loading,
landmark detection, face registration and face verification. The controller
never implements these; it loads an engine module by dotted path and talks
to it through the FaceEngine interface.

An engine module must expose:

    def create_engine(config: dict) -> FaceEngine

Usage:
    from core.engine import load_engine, guard_engine

    engine = guard_engine(load_engine("core.mock_engine", engine_config))
    await engine.load_models()
"""

import asyncio
import importlib
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence, Tuple

from core.errors import EngineLoadError

logger = logging.getLogger(__name__)

# A landmark in frame pixel coordinates
Point = Tuple[float, float]
# An overlay edge between two landmark indices
Connection = Tuple[int, int]

ENGINE_FACTORY = "create_engine"


class FaceEngine(ABC):
    """
    Abstract face engine.

    Attributes:
        reentrant: True if concurrent calls are safe. When False, callers
                   wrap the engine in SerializedEngine.
    """

    reentrant: bool = False

    @property
    def face_connections(self) -> Sequence[Connection]:
        """Static connectivity topology used to draw overlay edges."""
        return ()

    @abstractmethod
    async def load_models(self) -> None:
        """Load models. Must complete before any other call."""

    @abstractmethod
    async def register_face(self, identifiers: List[str], frame_source) -> Dict[str, Any]:
        """
        Register the face currently in view.

        Returns:
            Dict with "encryptedFace" (opaque credential string) and an
            optional "metadata" dict.

        Raises:
            EngineRejection: e.g. "No face detected".
        """

    @abstractmethod
    async def verify_face(self, credential: str, identifiers: List[str], frame_source) -> bool:
        """Check the face in view against a credential issued by register_face."""

    @abstractmethod
    async def detect_landmarks(self, frame_source) -> List[Point]:
        """Landmark points for the current frame, in pixel coordinates."""

    async def close(self) -> None:
        """Release engine resources."""


class SerializedEngine(FaceEngine):
    """
    Wraps an engine so that at most one call is in flight at a time.

    The detection loop and the request pipeline share one engine; a
    non-reentrant engine must not see their calls overlap.
    """

    def __init__(self, engine: FaceEngine):
        self.inner = engine
        self._lock = asyncio.Lock()

    @property
    def face_connections(self) -> Sequence[Connection]:
        return self.inner.face_connections

    async def load_models(self) -> None:
        async with self._lock:
            await self.inner.load_models()

    async def register_face(self, identifiers, frame_source):
        async with self._lock:
            return await self.inner.register_face(identifiers, frame_source)

    async def verify_face(self, credential, identifiers, frame_source):
        async with self._lock:
            return await self.inner.verify_face(credential, identifiers, frame_source)

    async def detect_landmarks(self, frame_source):
        async with self._lock:
            return await self.inner.detect_landmarks(frame_source)

    async def close(self) -> None:
        async with self._lock:
            await self.inner.close()


def guard_engine(engine: FaceEngine) -> FaceEngine:
    """Return the engine itself if reentrant, otherwise a serialized wrapper."""
    if getattr(engine, "reentrant", False):
        return engine
    return SerializedEngine(engine)


def load_engine(module_path: str, config: Dict[str, Any]) -> FaceEngine:
    """
    Import an engine module and build its engine.

    Args:
        module_path: Dotted module path, e.g. "core.mock_engine".
        config: The `engine` config section, passed to create_engine.

    Returns:
        The engine instance (models not yet loaded).

    Raises:
        EngineLoadError: If the module cannot be imported, does not expose
                         create_engine, or the factory fails.
    """
    try:
        module = importlib.import_module(module_path)
    except Exception as e:
        raise EngineLoadError(f"Failed to load engine module '{module_path}': {e}") from e

    factory = getattr(module, ENGINE_FACTORY, None)
    if not callable(factory):
        raise EngineLoadError(
            f"Engine module '{module_path}' does not expose {ENGINE_FACTORY}()"
        )

    try:
        engine = factory(config)
    except Exception as e:
        raise EngineLoadError(f"Engine construction failed: {e}") from e

    if engine is None:
        raise EngineLoadError(f"Engine module '{module_path}' returned no engine")

    logger.info(f"Loaded engine {type(engine).__name__} from {module_path}")
    return engine
