# camera.py
"""Thin VideoCapture wrapper that reports the negotiated frame size."""
from __future__ import annotations

import time
from typing import Optional, Tuple

import cv2
import numpy as np
from loguru import logger

from vehicle_tracking.config import CaptureConfig
from vehicle_tracking.errors import DeviceError, TransientFrameError


class FrameSource:
    def __init__(self, config: Optional[CaptureConfig] = None) -> None:
        self.config = config or CaptureConfig()
        self.cap: Optional[cv2.VideoCapture] = None
        self.camera_index: Optional[int] = None

        # Exposed runtime-queryable values
        self.actual_width: int = 0
        self.actual_height: int = 0
        self.actual_fps: float = 0.0
        self.actual_fourcc_str: str = ""
        self._read_failures = 0

    # ------------------------------------------------------------------ #
    #   I N T E R N A L   H E L P E R S
    # ------------------------------------------------------------------ #
    @staticmethod
    def _get_fourcc_str(fourcc_val: int) -> str:
        if fourcc_val == 0:
            return ""
        return "".join(chr((fourcc_val >> (8 * i)) & 0xFF) for i in range(4))

    # ------------------------------------------------------------------ #
    #   P U B L I C   A P I
    # ------------------------------------------------------------------ #
    @property
    def frame_size(self) -> Tuple[int, int]:
        return self.actual_width, self.actual_height

    def open(self, camera_index: int) -> Tuple[int, int]:
        """Open the device and return the ``(width, height)`` actually negotiated."""
        self.release()
        cap = cv2.VideoCapture(camera_index, self.config.backend)
        if not cap.isOpened():
            cap.release()
            raise DeviceError(f"Could not open camera {camera_index}", camera_index)

        # -------- core settings (res / fps / fourcc) ------------------
        if self.config.fourcc_str:
            cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*self.config.fourcc_str))
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        if self.config.fps_request > 0:
            cap.set(cv2.CAP_PROP_FPS, self.config.fps_request)

        if self.config.settle_time_s > 0:
            time.sleep(self.config.settle_time_s)  # Let driver settle

        # -------- query what we actually got --------------------------
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if width <= 0 or height <= 0:
            cap.release()
            raise DeviceError(
                f"Camera {camera_index} returned zero resolution", camera_index
            )

        self.cap = cap
        self.camera_index = camera_index
        self.actual_width = width
        self.actual_height = height
        self.actual_fps = float(cap.get(cv2.CAP_PROP_FPS))
        self.actual_fourcc_str = self._get_fourcc_str(int(cap.get(cv2.CAP_PROP_FOURCC)))
        self._read_failures = 0

        logger.info(
            "Camera {} opened at {}x{}@{:.1f} FPS (FOURCC='{}')",
            camera_index, width, height, self.actual_fps, self.actual_fourcc_str,
        )
        return width, height

    def grab(self) -> np.ndarray:
        """
        Block until the next frame arrives.

        Raises TransientFrameError for a single failed read and DeviceError
        once the device is closed or ``max_read_failures`` reads failed in a row.
        """
        if not self.is_opened():
            raise DeviceError(f"Camera {self.camera_index} is not open", self.camera_index)
        ret, frame = self.cap.read()
        if ret and frame is not None:
            self._read_failures = 0
            return frame

        self._read_failures += 1
        if self._read_failures >= self.config.max_read_failures:
            raise DeviceError(
                f"Camera {self.camera_index} lost after {self._read_failures} failed reads",
                self.camera_index,
            )
        raise TransientFrameError(
            f"Camera {self.camera_index} frame read failed", self.camera_index
        )

    def is_opened(self) -> bool:
        return bool(self.cap and self.cap.isOpened())

    def release(self) -> None:
        if self.cap:
            logger.info("Releasing camera {}", self.camera_index)
            self.cap.release()
            self.cap = None

    def __repr__(self) -> str:
        state = "open" if self.is_opened() else "closed"
        return f"<FrameSource camera={self.camera_index} {self.actual_width}x{self.actual_height} ({state})>"
