"""
Pytest fixtures: synthetic frames plus fake camera and serial devices.
"""
from typing import Dict, List, Optional, Set

import cv2
import numpy as np
import pytest
import serial

from vehicle_tracking import camera as camera_module
from vehicle_tracking import channel as channel_module
from vehicle_tracking.channel import VehicleChannel
from vehicle_tracking.common import PerCamp
from vehicle_tracking.config import (
    CalibrationCorners,
    CaptureConfig,
    LocatorConfig,
    SystemConfig,
    ThresholdRange,
    VehicleConfig,
)


# ---------------------------------------------------------------------------
#   Fake serial port
# ---------------------------------------------------------------------------
class FakeSerialBus:
    """Which ports exist, which are claimed, and what was written to each."""

    def __init__(self, ports=("/dev/ttyA", "/dev/ttyB")):
        self.ports: Set[str] = set(ports)
        self.claimed: Set[str] = set()
        self.written: Dict[str, List[bytes]] = {}
        self.fail_writes: Set[str] = set()

    def make(self, port=None, **kwargs):
        return FakeSerial(self, port, **kwargs)


class FakeSerial:
    def __init__(self, bus: FakeSerialBus, port: Optional[str], **kwargs):
        if port not in bus.ports:
            raise serial.SerialException(f"could not open port {port}: No such file or directory")
        if port in bus.claimed:
            raise serial.SerialException(f"could not exclusively lock port {port}")
        self.bus = bus
        self.port = port
        self.baudrate = kwargs.get("baudrate")
        self.is_open = True
        bus.claimed.add(port)
        bus.written.setdefault(port, [])

    def reset_input_buffer(self):
        pass

    def write(self, data: bytes) -> int:
        if self.port in self.bus.fail_writes:
            raise serial.SerialException("write failed: device disconnected")
        self.bus.written[self.port].append(bytes(data))
        return len(data)

    def flush(self):
        pass

    def close(self):
        if self.is_open:
            self.is_open = False
            self.bus.claimed.discard(self.port)


@pytest.fixture
def serial_bus(monkeypatch):
    bus = FakeSerialBus()
    monkeypatch.setattr(channel_module.serial, "Serial", bus.make)
    return bus


@pytest.fixture
def channel_factory():
    return lambda camp: VehicleChannel(camp, settle_time_s=0.0)


# ---------------------------------------------------------------------------
#   Fake camera
# ---------------------------------------------------------------------------
class FakeCapture:
    def __init__(self, rig: "FakeCameraRig", index: int):
        self.rig = rig
        self.index = index
        self.opened = index in rig.devices
        self.props: Dict[int, float] = {}
        if self.opened:
            rig.open_events.append(("open", index))

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        w, h = self.rig.devices.get(self.index, (0, 0))
        if prop == cv2.CAP_PROP_FRAME_WIDTH:
            return float(w)
        if prop == cv2.CAP_PROP_FRAME_HEIGHT:
            return float(h)
        if prop == cv2.CAP_PROP_FPS:
            return 30.0
        return 0.0

    def read(self):
        if self.rig.frames:
            frame = self.rig.frames.pop(0)
        else:
            frame = self.rig.default_frame
        if frame is None:
            return False, None
        return True, frame.copy()

    def release(self):
        if self.opened:
            self.opened = False
            self.rig.open_events.append(("release", self.index))


class FakeCameraRig:
    """Device index → negotiated (width, height); frames served in order."""

    def __init__(self):
        self.devices: Dict[int, tuple] = {0: (640, 480), 1: (640, 480)}
        self.frames: List[Optional[np.ndarray]] = []
        self.default_frame: Optional[np.ndarray] = np.zeros((480, 640, 3), np.uint8)
        self.open_events: List[tuple] = []

    def make(self, index, backend=0):
        return FakeCapture(self, index)


@pytest.fixture
def camera_rig(monkeypatch):
    rig = FakeCameraRig()
    monkeypatch.setattr(camera_module.cv2, "VideoCapture", rig.make)
    return rig


# ---------------------------------------------------------------------------
#   Frames and configuration
# ---------------------------------------------------------------------------
@pytest.fixture
def two_vehicle_frame():
    """Grey court with a red vehicle (camp A) and a blue one (camp B)."""
    frame = np.zeros((480, 640, 3), dtype=np.uint8)
    frame[:] = (90, 90, 90)
    cv2.rectangle(frame, (300, 220), (339, 259), (0, 0, 255), -1)   # red, centre (319.5, 239.5)
    cv2.rectangle(frame, (100, 100), (119, 119), (255, 0, 0), -1)   # blue
    return frame


@pytest.fixture
def red_locator_config():
    return LocatorConfig(
        hue=ThresholdRange.hue(170, 10),
        saturation=ThresholdRange.linear(100, 255),
        value=ThresholdRange.linear(100, 255),
        min_area=50.0,
    )


@pytest.fixture
def blue_locator_config():
    return LocatorConfig(
        hue=ThresholdRange.hue(100, 130),
        saturation=ThresholdRange.linear(100, 255),
        value=ThresholdRange.linear(100, 255),
        min_area=50.0,
    )


@pytest.fixture
def system_config(red_locator_config, blue_locator_config):
    return SystemConfig(
        vehicles=PerCamp(
            a=VehicleConfig(locator=red_locator_config, serial_port="/dev/ttyA", baudrate=115200),
            b=VehicleConfig(locator=blue_locator_config, serial_port="/dev/ttyB", baudrate=115200),
        ),
        camera=0,
        capture=CaptureConfig(settle_time_s=0.0, max_read_failures=3),
        monitor_frame_size=(960, 720),
        court_size=(200, 150),
        calibration_corners=CalibrationCorners.full_frame(640, 480),
    )
