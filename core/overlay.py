"""
Landmark overlay surface.

The detection loop renders into an OverlaySurface: a BGR canvas sized to the
camera frame. The preview shown to the user is mirrored, so every landmark is
drawn at (frame_width - x, y).

Provides:
- OverlaySurface.render()   - clear, draw markers, draw edges
- OverlaySurface.compose()  - mirrored camera frame with the overlay on top
"""

from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from core.engine import Connection, Point


Color = Tuple[int, int, int]


def flip_point(point: Point, frame_width: int) -> Tuple[int, int]:
    """Mirror a landmark horizontally to match the mirrored preview."""
    x, y = point
    return int(round(frame_width - x)), int(round(y))


class OverlaySurface:
    """
    Render target for the live landmark overlay.

    Attributes:
        image: Current overlay canvas (H, W, 3) uint8. Black means empty.
    """

    def __init__(
        self,
        width: int = 640,
        height: int = 480,
        marker_radius: int = 1,
        marker_color: Color = (0, 255, 0),
        edge_color: Color = (0, 200, 255),
        edge_thickness: int = 1,
    ):
        self.marker_radius = marker_radius
        self.marker_color = tuple(marker_color)
        self.edge_color = tuple(edge_color)
        self.edge_thickness = edge_thickness
        self.image = np.zeros((height, width, 3), dtype=np.uint8)

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) of the canvas."""
        h, w = self.image.shape[:2]
        return w, h

    def resize(self, width: int, height: int) -> bool:
        """
        Match the canvas to the frame dimensions.

        Returns:
            True if the canvas was resized (and cleared).
        """
        if (width, height) == self.size:
            return False
        self.image = np.zeros((height, width, 3), dtype=np.uint8)
        return True

    def clear(self) -> None:
        self.image = np.zeros_like(self.image)

    def render(
        self,
        points: Sequence[Point],
        connections: Sequence[Connection],
        frame_width: Optional[int] = None,
    ) -> None:
        """
        Draw one landmark frame: clear, one marker per point, then edges.

        Args:
            points: Landmarks in frame pixel coordinates.
            connections: (start, end) index pairs; pairs referencing missing
                         points are skipped.
            frame_width: Width used for mirroring. Defaults to canvas width.
        """
        if frame_width is None:
            frame_width = self.size[0]

        # Draw into a fresh buffer so readers never see a half-drawn frame
        canvas = np.zeros_like(self.image)
        flipped = [flip_point(p, frame_width) for p in points]

        for center in flipped:
            cv2.circle(canvas, center, self.marker_radius, self.marker_color, -1, cv2.LINE_AA)

        n = len(flipped)
        for start, end in connections:
            if 0 <= start < n and 0 <= end < n:
                cv2.line(
                    canvas, flipped[start], flipped[end],
                    self.edge_color, self.edge_thickness, cv2.LINE_AA,
                )

        self.image = canvas

    def compose(self, frame: np.ndarray) -> np.ndarray:
        """
        Mirror a camera frame and paint the overlay on top.

        Args:
            frame: BGR camera frame.

        Returns:
            New BGR image; the input frame is not modified.
        """
        preview = cv2.flip(frame, 1)
        overlay = self.image
        if overlay.shape[:2] != preview.shape[:2]:
            h, w = preview.shape[:2]
            overlay = cv2.resize(overlay, (w, h), interpolation=cv2.INTER_NEAREST)

        mask = overlay.any(axis=2)
        preview[mask] = overlay[mask]
        return preview
