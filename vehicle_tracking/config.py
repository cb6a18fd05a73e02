# config.py
"""Typed configuration blobs for the whole system."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Tuple

from vehicle_tracking.common import Camp, PerCamp, Point, Size
from vehicle_tracking.errors import ConfigurationError

# OpenCV stores 8-bit hue as 0‒179, saturation / value as 0‒255.
HUE_MAX = 179
SV_MAX = 255


@dataclass(frozen=True)
class ThresholdRange:
    """
    Closed interval ``[min, max]`` on one HSV channel.

    With ``circular=True`` (hue) ``min > max`` wraps around the end of the
    domain instead of being empty.
    """
    min: int
    max: int
    upper_bound: int = SV_MAX
    circular: bool = False

    def __post_init__(self) -> None:
        for bound in (self.min, self.max):
            if not 0 <= bound <= self.upper_bound:
                raise ConfigurationError(
                    f"Threshold bound {bound} outside 0..{self.upper_bound}"
                )
        if not self.circular and self.min > self.max:
            raise ConfigurationError(
                f"Empty threshold range [{self.min}, {self.max}]"
            )

    @classmethod
    def hue(cls, lo: int, hi: int) -> "ThresholdRange":
        return cls(lo, hi, upper_bound=HUE_MAX, circular=True)

    @classmethod
    def linear(cls, lo: int, hi: int) -> "ThresholdRange":
        return cls(lo, hi, upper_bound=SV_MAX, circular=False)

    @property
    def wraps(self) -> bool:
        return self.circular and self.min > self.max

    def contains(self, v: int) -> bool:
        if self.wraps:
            return v >= self.min or v <= self.max
        return self.min <= v <= self.max


@dataclass(frozen=True)
class LocatorConfig:
    hue: ThresholdRange = field(default_factory=lambda: ThresholdRange.hue(0, HUE_MAX))
    saturation: ThresholdRange = field(default_factory=lambda: ThresholdRange.linear(0, SV_MAX))
    value: ThresholdRange = field(default_factory=lambda: ThresholdRange.linear(0, SV_MAX))
    min_area: float = 0.0             # px²
    show_mask: bool = False           # expose the binary mask for diagnosis

    def __post_init__(self) -> None:
        if self.min_area < 0:
            raise ConfigurationError(f"min_area must be >= 0, got {self.min_area}")
        if not self.hue.circular:
            raise ConfigurationError("Hue range must be circular")


@dataclass(frozen=True)
class VehicleConfig:
    locator: LocatorConfig = field(default_factory=LocatorConfig)
    serial_port: str = ""             # "" = no vehicle wired up
    baudrate: int = 115_200

    def __post_init__(self) -> None:
        if self.baudrate <= 0:
            raise ConfigurationError(f"baudrate must be positive, got {self.baudrate}")

    @property
    def show_mask(self) -> bool:
        return self.locator.show_mask


@dataclass(frozen=True)
class CaptureConfig:
    width: int = 640
    height: int = 480
    fps_request: int = 30
    fourcc_str: str = "MJPG"
    backend: int = 0                  # cv2.CAP_ANY
    settle_time_s: float = 0.1        # let driver settle after open
    max_read_failures: int = 5        # consecutive failures → device lost


@dataclass(frozen=True)
class CalibrationCorners:
    """Camera-pixel positions of the court corners, fixed winding TL, TR, BR, BL."""
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point

    @classmethod
    def full_frame(cls, width: float, height: float) -> "CalibrationCorners":
        return cls((0.0, 0.0), (float(width), 0.0), (float(width), float(height)), (0.0, float(height)))

    def as_tuple(self) -> Tuple[Point, Point, Point, Point]:
        return (self.top_left, self.top_right, self.bottom_right, self.bottom_left)


@dataclass(frozen=True)
class SystemConfig:
    vehicles: PerCamp[VehicleConfig] = field(
        default_factory=lambda: PerCamp(a=VehicleConfig(), b=VehicleConfig())
    )
    camera: int = 0
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    monitor_frame_size: Size = (960, 720)
    court_size: Size = (254, 254)
    calibration_corners: CalibrationCorners = field(
        default_factory=lambda: CalibrationCorners.full_frame(640, 480)
    )

    def __post_init__(self) -> None:
        if self.camera < 0:
            raise ConfigurationError(f"Camera index must be >= 0, got {self.camera}")
        for name, (w, h) in (("monitor", self.monitor_frame_size), ("court", self.court_size)):
            if w <= 0 or h <= 0:
                raise ConfigurationError(f"{name} size must be positive, got {w}x{h}")

    def with_vehicle(self, camp: Camp, vehicle: VehicleConfig) -> "SystemConfig":
        return replace(self, vehicles=self.vehicles.replace(camp, vehicle))


def default_config() -> SystemConfig:
    """Factory defaults: a red vehicle for camp A and a blue one for camp B."""
    red = LocatorConfig(
        hue=ThresholdRange.hue(170, 10),
        saturation=ThresholdRange.linear(100, 255),
        value=ThresholdRange.linear(100, 255),
        min_area=50.0,
    )
    blue = LocatorConfig(
        hue=ThresholdRange.hue(100, 130),
        saturation=ThresholdRange.linear(100, 255),
        value=ThresholdRange.linear(100, 255),
        min_area=50.0,
    )
    return SystemConfig(
        vehicles=PerCamp(a=VehicleConfig(locator=red), b=VehicleConfig(locator=blue)),
    )
