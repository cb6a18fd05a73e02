# transform.py
"""
Camera → court perspective mapping built from four calibration corners.

Corner correspondence (camera pixel → court units, origin top-left):

    top_left     → (0, 0)
    top_right    → (W, 0)
    bottom_right → (W, H)
    bottom_left  → (0, H)

A second mapping scales the full camera frame onto the monitor frame and is
only used for drawing overlays.
"""
from __future__ import annotations

import itertools
import math
from typing import Optional, Tuple

import cv2
import numpy as np

from vehicle_tracking.common import Point, Size
from vehicle_tracking.config import CalibrationCorners
from vehicle_tracking.errors import ConfigurationError

_EPS = 1e-6


def _rect_corners(size: Tuple[float, float]) -> np.ndarray:
    w, h = size
    return np.array([[0.0, 0.0], [w, 0.0], [w, h], [0.0, h]], dtype=np.float32)


def _check_non_degenerate(pts: np.ndarray) -> None:
    for (i, p), (j, q) in itertools.combinations(enumerate(pts), 2):
        if np.hypot(*(p - q)) < _EPS:
            raise ConfigurationError(f"Calibration corners {i} and {j} coincide")
    for a, b, c in itertools.combinations(range(4), 3):
        ab = pts[b] - pts[a]
        ac = pts[c] - pts[a]
        if abs(ab[0] * ac[1] - ab[1] * ac[0]) < _EPS:
            raise ConfigurationError(f"Calibration corners {a}, {b}, {c} are collinear")


def _apply(H: np.ndarray, pt: Point) -> Point:
    x, y, w = H @ np.array([pt[0], pt[1], 1.0])
    return float(x / w), float(y / w)


class CalibratedTransform:
    """Immutable; build a new instance whenever any input changes."""

    __slots__ = ("_camera_frame_size", "_monitor_frame_size", "_court_size",
                 "_corners", "_H_court", "_H_court_inv", "_H_display")

    def __init__(
        self,
        camera_frame_size: Size,
        monitor_frame_size: Size,
        court_size: Size,
        calibration_corners: CalibrationCorners,
    ):
        for name, (w, h) in (
            ("camera frame", camera_frame_size),
            ("monitor frame", monitor_frame_size),
            ("court", court_size),
        ):
            if w <= 0 or h <= 0:
                raise ConfigurationError(f"{name} size must be positive, got {w}x{h}")

        src = np.array(calibration_corners.as_tuple(), dtype=np.float32)
        _check_non_degenerate(src)

        H_court = cv2.getPerspectiveTransform(src, _rect_corners(court_size))
        if not np.all(np.isfinite(H_court)) or abs(np.linalg.det(H_court)) < 1e-12:
            raise ConfigurationError("Calibration corners give a singular mapping")

        H_display = cv2.getPerspectiveTransform(
            _rect_corners(camera_frame_size), _rect_corners(monitor_frame_size)
        )

        H_court_inv = np.linalg.inv(H_court)
        for m in (H_court, H_court_inv, H_display):
            m.flags.writeable = False

        object.__setattr__(self, "_camera_frame_size", tuple(camera_frame_size))
        object.__setattr__(self, "_monitor_frame_size", tuple(monitor_frame_size))
        object.__setattr__(self, "_court_size", tuple(court_size))
        object.__setattr__(self, "_corners", calibration_corners)
        object.__setattr__(self, "_H_court", H_court)
        object.__setattr__(self, "_H_court_inv", H_court_inv)
        object.__setattr__(self, "_H_display", H_display)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    # ------------------------- properties -------------------------
    @property
    def camera_frame_size(self) -> Size:
        return self._camera_frame_size

    @property
    def monitor_frame_size(self) -> Size:
        return self._monitor_frame_size

    @property
    def court_size(self) -> Size:
        return self._court_size

    @property
    def calibration_corners(self) -> CalibrationCorners:
        return self._corners

    @property
    def court_matrix(self) -> np.ndarray:
        return self._H_court

    # -------------------------- mapping ---------------------------
    def to_court(self, pt: Point) -> Point:
        return _apply(self._H_court, pt)

    def to_display(self, pt: Point) -> Point:
        return _apply(self._H_display, pt)

    def court_to_camera(self, pt: Point) -> Point:
        """Inverse of :meth:`to_court`, e.g. for drawing court lines."""
        return _apply(self._H_court_inv, pt)

    def heading_to_court(self, pt: Point, angle_deg: Optional[float]) -> Optional[float]:
        """Map a camera-space direction at ``pt`` to a court-space heading (deg)."""
        if angle_deg is None:
            return None
        rad = math.radians(angle_deg)
        tip = (pt[0] + math.cos(rad), pt[1] + math.sin(rad))
        x0, y0 = self.to_court(pt)
        x1, y1 = self.to_court(tip)
        return math.degrees(math.atan2(y1 - y0, x1 - x0)) % 360.0

    def __repr__(self) -> str:
        return (
            f"<CalibratedTransform camera={self._camera_frame_size} "
            f"monitor={self._monitor_frame_size} court={self._court_size}>"
        )
