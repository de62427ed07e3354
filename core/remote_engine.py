"""
Remote face engine.

Delegates registration and verification to an HTTP face-processing service
and runs landmark detection locally with MediaPipe for the live overlay.

Service contract (JSON, see core.schemas):
    POST /models/load
    POST /faces/register  {identifiers, frame}                -> {encryptedFace, metadata?}
    POST /faces/verify    {encryptedFace, identifiers, frame} -> {match}
    Errors: non-2xx with {"detail": "..."}

Select it in config.yaml:

    engine:
      module: "core.remote_engine"
      remote:
        base_url: "http://localhost:8000"
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
import pydantic

from core.camera import CameraFrameSource
from core.engine import FaceEngine, Point
from core.errors import EngineRejection
from core.landmarks import FACE_CONNECTIONS, LandmarkDetector
from core.schemas import (
    ErrorResponse,
    RegisterRequest,
    RegisterResponse,
    VerifyRequest,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


class RemoteFaceEngine(FaceEngine):
    """
    Engine backed by a remote face service.

    Args:
        base_url: Service root URL.
        timeout_sec: Per-request timeout.
        jpeg_quality: JPEG quality for uploaded frames.
        landmark_detector: Object with load(), detect_points(frame), close().
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout_sec: float = 30.0,
        jpeg_quality: int = 85,
        landmark_detector: Optional[LandmarkDetector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout_sec = timeout_sec
        self.jpeg_quality = jpeg_quality
        self._detector = landmark_detector or LandmarkDetector()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def face_connections(self):
        return FACE_CONNECTIONS

    async def load_models(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_sec,
                transport=self._transport,
            )

        await self._post("/models/load", {})
        await asyncio.to_thread(self._detector.load)
        logger.info(f"Remote engine ready at {self.base_url}")

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST JSON and return the decoded body, mapping failures to EngineRejection."""
        if self._client is None:
            raise EngineRejection("Models not loaded")

        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            raise EngineRejection(f"Face service unreachable: {e}") from e

        if response.is_error:
            try:
                detail = ErrorResponse.model_validate(response.json()).detail
            except (ValueError, pydantic.ValidationError):
                detail = response.text or f"HTTP {response.status_code}"
            logger.debug(f"POST {path} failed: {response.status_code} {detail}")
            raise EngineRejection(detail)

        try:
            return response.json()
        except ValueError as e:
            raise EngineRejection(f"Malformed response from {path}") from e

    async def _encoded_frame(self, frame_source) -> str:
        frame = frame_source.current_frame()
        if frame is None:
            raise EngineRejection("No frame available")
        return await asyncio.to_thread(
            CameraFrameSource.frame_to_base64, frame, self.jpeg_quality
        )

    async def register_face(self, identifiers: List[str], frame_source) -> Dict[str, Any]:
        request = RegisterRequest(
            identifiers=identifiers, frame=await self._encoded_frame(frame_source)
        )
        data = await self._post("/faces/register", request.model_dump())

        try:
            result = RegisterResponse.model_validate(data)
        except pydantic.ValidationError as e:
            raise EngineRejection("Malformed registration response") from e
        return result.model_dump(by_alias=True, exclude_none=True)

    async def verify_face(self, credential: str, identifiers: List[str], frame_source) -> bool:
        request = VerifyRequest(
            encrypted_face=credential,
            identifiers=identifiers,
            frame=await self._encoded_frame(frame_source),
        )
        data = await self._post("/faces/verify", request.model_dump(by_alias=True))

        try:
            return VerifyResponse.model_validate(data).match
        except pydantic.ValidationError as e:
            raise EngineRejection("Malformed verification response") from e

    async def detect_landmarks(self, frame_source) -> List[Point]:
        frame = frame_source.current_frame()
        if frame is None:
            raise EngineRejection("No frame available")
        return await asyncio.to_thread(self._detector.detect_points, frame)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._detector.close()


def create_engine(config: Dict[str, Any]) -> RemoteFaceEngine:
    """Engine factory used by core.engine.load_engine."""
    remote_config = config.get("remote", {}) or {}
    return RemoteFaceEngine(
        base_url=remote_config.get("base_url", "http://localhost:8000"),
        timeout_sec=float(remote_config.get("timeout_sec", 30.0)),
        jpeg_quality=int(remote_config.get("jpeg_quality", 85)),
        landmark_detector=LandmarkDetector(config.get("landmarks")),
    )
