# locator.py
"""HSV colour-threshold vehicle locator."""
from __future__ import annotations

import math
from typing import List, Optional, Sequence

import cv2
import numpy as np
from loguru import logger

from vehicle_tracking.common import Camp, Detection, Pose
from vehicle_tracking.config import HUE_MAX, LocatorConfig, ThresholdRange
from vehicle_tracking.errors import TransientFrameError


def _channel_mask(channel: np.ndarray, rng: ThresholdRange) -> np.ndarray:
    if rng.wraps:
        # [min, 179] ∪ [0, max]
        upper = cv2.inRange(channel, rng.min, HUE_MAX)
        lower = cv2.inRange(channel, 0, rng.max)
        return cv2.bitwise_or(upper, lower)
    return cv2.inRange(channel, rng.min, rng.max)


def build_mask(hsv: np.ndarray, config: LocatorConfig) -> np.ndarray:
    """Binary mask (0 / 255) of pixels accepted by all three ranges."""
    h, s, v = cv2.split(hsv)
    mask = _channel_mask(h, config.hue)
    mask = cv2.bitwise_and(mask, _channel_mask(s, config.saturation))
    return cv2.bitwise_and(mask, _channel_mask(v, config.value))


def _orientation_deg(region: np.ndarray) -> Optional[float]:
    """Major-axis angle of a binary region from its second-order moments."""
    m = cv2.moments(region, binaryImage=True)
    if m["m00"] == 0:
        return None
    mu20, mu02, mu11 = m["mu20"], m["mu02"], m["mu11"]
    if abs(mu20 - mu02) < 1e-9 and abs(mu11) < 1e-9:
        return None  # isotropic blob
    angle = 0.5 * math.degrees(math.atan2(2.0 * mu11, mu20 - mu02))
    return angle % 180.0


class VehicleLocator:
    """
    Finds one camp's vehicle by colour. Holds no state between frames other
    than the last diagnostic mask and error, both overwritten on every call.
    """

    def __init__(self, camp: Camp, config: LocatorConfig):
        self.camp = camp
        self.config = config
        self.mask: Optional[np.ndarray] = None
        self.last_error: Optional[TransientFrameError] = None

    def locate(self, frame_bgr: Optional[np.ndarray]) -> List[Detection]:
        """
        Returns every region at least ``min_area`` pixels large, largest first.
        A missing, empty or non-8-bit-BGR frame gives an empty list and sets ``last_error``.
        """
        self.mask = None
        self.last_error = None

        if (
            frame_bgr is None
            or frame_bgr.ndim != 3
            or frame_bgr.shape[2] != 3
            or frame_bgr.size == 0
            or frame_bgr.dtype != np.uint8
        ):
            shape = None if frame_bgr is None else frame_bgr.shape
            dtype = None if frame_bgr is None else frame_bgr.dtype
            self.last_error = TransientFrameError(
                f"Locator {self.camp.value}: unusable frame (shape={shape}, dtype={dtype})"
            )
            logger.warning("{}", self.last_error)
            return []

        hsv = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2HSV)
        mask = build_mask(hsv, self.config)
        n, labels, stats, centroids = cv2.connectedComponentsWithStats(mask, connectivity=8)
        if self.config.show_mask:
            mask.flags.writeable = False
            self.mask = mask

        out: List[Detection] = []
        for i in range(1, n):  # label 0 is background
            area = float(stats[i, cv2.CC_STAT_AREA])
            if area < self.config.min_area:
                continue
            x = int(stats[i, cv2.CC_STAT_LEFT])
            y = int(stats[i, cv2.CC_STAT_TOP])
            w = int(stats[i, cv2.CC_STAT_WIDTH])
            h = int(stats[i, cv2.CC_STAT_HEIGHT])
            region = (labels[y:y + h, x:x + w] == i).astype(np.uint8)
            cx, cy = centroids[i]
            out.append(
                Detection(
                    position_px=(float(cx), float(cy)),
                    area=area,
                    orientation_deg=_orientation_deg(region),
                    bbox_px=(x, y, w, h),
                )
            )

        out.sort(key=lambda d: d.area, reverse=True)
        return out


def largest_area(poses: Sequence[Pose]) -> Sequence[Pose]:
    """Pose policy keeping only the largest blob."""
    if not poses:
        return ()
    return (max(poses, key=lambda p: p.area),)
