"""
Mock face engine.

Simulates the external engine for development without a real backend.
Landmarks are a jittered face outline placed in the middle of the frame.
Credentials are opaque tokens bound to the identifiers they were issued for,
so verify_face matches exactly when the same identifiers are presented.

Select it in config.yaml:

    engine:
      module: "core.mock_engine"
"""

import asyncio
import base64
import hashlib
import json
import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np

from core.engine import FaceEngine, Point
from core.errors import EngineRejection

logger = logging.getLogger(__name__)

NO_FACE_MESSAGE = "No face detected"
CREDENTIAL_VERSION = 1


class MockFaceEngine(FaceEngine):
    """
    Simulated engine mimicking the real engine's contract.

    Args:
        no_face_rate: Fraction of register/verify calls rejected with
                      "No face detected".
        latency_sec: Simulated processing delay for model load and
                     register/verify.
        model_version: Reported in registration metadata.
        seed: RNG seed for reproducible runs.
        n_points: Number of outline landmarks.
    """

    def __init__(
        self,
        no_face_rate: float = 0.1,
        latency_sec: float = 0.3,
        model_version: str = "mock-1.0",
        seed: Optional[int] = None,
        n_points: int = 36,
    ):
        self.no_face_rate = no_face_rate
        self.latency_sec = latency_sec
        self.model_version = model_version
        self.n_points = n_points
        self._rng = np.random.default_rng(seed)
        self._models_loaded = False
        # Closed outline: each point joins the next, last joins first
        self._connections = [(i, (i + 1) % n_points) for i in range(n_points)]

    @property
    def face_connections(self):
        return self._connections

    async def load_models(self) -> None:
        await asyncio.sleep(self.latency_sec)
        self._models_loaded = True
        logger.info(f"Mock models loaded (version {self.model_version})")

    def _require_models(self) -> None:
        if not self._models_loaded:
            raise EngineRejection("Models not loaded")

    def _require_face(self, frame_source) -> None:
        """Reject like the real engine when no frame or (randomly) no face."""
        if frame_source.current_frame() is None:
            raise EngineRejection(NO_FACE_MESSAGE)
        if self._rng.random() < self.no_face_rate:
            raise EngineRejection(NO_FACE_MESSAGE)

    @staticmethod
    def _identifier_digest(identifiers: List[str]) -> str:
        joined = "\x1f".join(identifiers)
        return hashlib.sha256(joined.encode("utf-8")).hexdigest()

    async def register_face(self, identifiers: List[str], frame_source) -> Dict[str, Any]:
        self._require_models()
        await asyncio.sleep(self.latency_sec)
        self._require_face(frame_source)

        payload = {
            "v": CREDENTIAL_VERSION,
            "ids": self._identifier_digest(identifiers),
            "nonce": secrets.token_hex(16),
        }
        credential = base64.urlsafe_b64encode(
            json.dumps(payload).encode("utf-8")
        ).decode("ascii")

        return {
            "encryptedFace": credential,
            "metadata": {
                "createdAt": datetime.now(timezone.utc).isoformat(),
                "modelVersion": self.model_version,
            },
        }

    async def verify_face(self, credential: str, identifiers: List[str], frame_source) -> bool:
        self._require_models()
        await asyncio.sleep(self.latency_sec)
        self._require_face(frame_source)

        try:
            payload = json.loads(base64.urlsafe_b64decode(credential.encode("ascii")))
            issued_for = payload["ids"]
        except (ValueError, KeyError, TypeError, UnicodeEncodeError) as e:
            raise EngineRejection("Invalid encrypted face data") from e

        return issued_for == self._identifier_digest(identifiers)

    async def detect_landmarks(self, frame_source) -> List[Point]:
        self._require_models()
        dims = frame_source.dimensions
        if dims is None:
            raise EngineRejection("No frame available")

        w, h = dims
        cx, cy = w / 2, h / 2
        # Portrait ellipse, roughly face-shaped
        rx, ry = w * 0.18, h * 0.32
        theta = np.linspace(0, 2 * np.pi, self.n_points, endpoint=False)
        jitter = self._rng.normal(0, 1.5, (self.n_points, 2))

        xs = cx + rx * np.cos(theta) + jitter[:, 0]
        ys = cy + ry * np.sin(theta) + jitter[:, 1]
        return [(float(x), float(y)) for x, y in zip(xs, ys)]


def create_engine(config: Dict[str, Any]) -> MockFaceEngine:
    """Engine factory used by core.engine.load_engine."""
    mock_config = config.get("mock", {}) or {}
    return MockFaceEngine(
        no_face_rate=float(mock_config.get("no_face_rate", 0.1)),
        latency_sec=float(mock_config.get("latency_sec", 0.3)),
        model_version=str(mock_config.get("model_version", "mock-1.0")),
        seed=mock_config.get("seed"),
    )
