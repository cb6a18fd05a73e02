# errors.py
"""Exception hierarchy for the vehicle-tracking core."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from vehicle_tracking.common import Camp


class VehicleTrackingError(Exception):
    """Base exception for all vehicle-tracking errors."""


class ConfigurationError(VehicleTrackingError):
    """Raised for invalid ranges or degenerate calibration corners."""


class DeviceError(VehicleTrackingError):
    """Raised when the camera cannot be opened or is lost."""

    def __init__(self, message: str, camera_index: Optional[int] = None):
        self.camera_index = camera_index
        super().__init__(message)


class TransientFrameError(VehicleTrackingError):
    """A single frame could not be read; the next grab may succeed."""

    def __init__(self, message: str, camera_index: Optional[int] = None):
        self.camera_index = camera_index
        super().__init__(message)


class ChannelError(VehicleTrackingError):
    """Raised when a vehicle serial channel fails to open or send."""

    def __init__(
        self,
        message: str,
        camp: Optional["Camp"] = None,
        port: Optional[str] = None,
    ):
        self.camp = camp
        self.port = port
        super().__init__(message)


class ProcessingError(VehicleTrackingError):
    """An unexpected failure inside one detection-loop iteration."""
