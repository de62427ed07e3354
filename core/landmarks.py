"""
Landmark Detection Module

This module provides 2D facial landmark extraction using MediaPipe Face
Landmarker. It is used by engines that do not ship their own landmark
detection (see core.remote_engine) to feed the live overlay.

Built on the MediaPipe Tasks FaceLandmarker (IMAGE running mode, one face).

Usage:
    from core.landmarks import LandmarkDetector, FACE_CONNECTIONS

    detector = LandmarkDetector(config)
    points = detector.detect_points(frame)
"""

import logging
import urllib.request
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

import mediapipe as mp
from mediapipe.tasks import python as mp_tasks
from mediapipe.tasks.python import vision
from mediapipe.tasks.python.vision.face_landmarker import FaceLandmarksConnections

from core.engine import Connection, Point

logger = logging.getLogger(__name__)

# float16 face landmarker bundle, fetched once into storage/models
MODEL_URL = "https://storage.googleapis.com/mediapipe-models/face_landmarker/face_landmarker/float16/1/face_landmarker.task"
MODEL_FILENAME = "face_landmarker.task"

# Face outline, eyes, brows and lips as (start, end) landmark index pairs
FACE_CONNECTIONS: List[Connection] = [
    (c.start, c.end) for c in FaceLandmarksConnections.FACE_LANDMARKS_CONTOURS
]


def get_model_path() -> str:
    """
    Local path of the face landmarker bundle.
    The first call downloads it from MODEL_URL.

    Returns:
        Filesystem path of the .task file.
    """
    from core.config import get_project_root

    model_dir = get_project_root() / "storage" / "models"
    model_dir.mkdir(parents=True, exist_ok=True)

    model_path = model_dir / MODEL_FILENAME

    if not model_path.exists():
        logger.info(f"Downloading MediaPipe face landmarker model from {MODEL_URL}")
        urllib.request.urlretrieve(MODEL_URL, str(model_path))
        logger.info(f"Model saved to {model_path}")

    return str(model_path)


class LandmarkDetector:
    """
    Facial landmark extraction using MediaPipe Face Landmarker.

    Attributes:
        config: The `engine.landmarks` config section.
        landmarker: MediaPipe FaceLandmarker object, created by load().
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Optional dict containing:
                - min_detection_confidence: face detection/presence threshold (0-1)
                - min_tracking_confidence: tracking threshold (0-1)
                - model_path: Explicit model file (skips the download)
        """
        self.config = config or {}
        self.landmarker = None

    def load(self) -> None:
        """Create the FaceLandmarker. Blocking; downloads the model on first use."""
        if self.landmarker is not None:
            return

        min_detection_conf = self.config.get("min_detection_confidence", 0.5)
        min_tracking_conf = self.config.get("min_tracking_confidence", 0.5)
        model_path = self.config.get("model_path") or get_model_path()

        options = vision.FaceLandmarkerOptions(
            base_options=mp_tasks.BaseOptions(model_asset_path=model_path),
            running_mode=vision.RunningMode.IMAGE,
            num_faces=1,
            min_face_detection_confidence=min_detection_conf,
            min_face_presence_confidence=min_detection_conf,
            min_tracking_confidence=min_tracking_conf,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
        )
        self.landmarker = vision.FaceLandmarker.create_from_options(options)
        logger.info("MediaPipe face landmarker ready")

    def detect_points(self, frame: np.ndarray) -> List[Point]:
        """
        Extract 2D landmarks for the first face in a BGR frame.

        Returns:
            Landmarks in pixel coordinates, or an empty list if no face.

        Raises:
            RuntimeError: If load() has not been called.
        """
        if self.landmarker is None:
            raise RuntimeError("LandmarkDetector.load() must be called first")

        h, w = frame.shape[:2]

        # MediaPipe expects RGB, OpenCV delivers BGR
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        results = self.landmarker.detect(mp_image)
        if not results.face_landmarks:
            return []

        return [(lm.x * w, lm.y * h) for lm in results.face_landmarks[0]]

    def close(self) -> None:
        """Release the landmarker; load() may be called again afterwards."""
        if self.landmarker is not None:
            self.landmarker.close()
            self.landmarker = None
