"""
Tests for the camera wrapper.
"""
import numpy as np
import pytest

from vehicle_tracking.camera import FrameSource
from vehicle_tracking.config import CaptureConfig
from vehicle_tracking.errors import DeviceError, TransientFrameError


@pytest.fixture
def source(camera_rig):
    return FrameSource(CaptureConfig(settle_time_s=0.0, max_read_failures=3))


class TestFrameSource:
    def test_open_reports_negotiated_size(self, source, camera_rig):
        camera_rig.devices[0] = (1280, 720)

        assert source.open(0) == (1280, 720)
        assert source.frame_size == (1280, 720)
        assert source.is_opened()

    def test_missing_device(self, source):
        with pytest.raises(DeviceError) as info:
            source.open(7)
        assert info.value.camera_index == 7
        assert not source.is_opened()

    def test_zero_resolution_is_device_error(self, source, camera_rig):
        camera_rig.devices[2] = (0, 0)
        with pytest.raises(DeviceError, match="zero resolution"):
            source.open(2)
        assert not source.is_opened()

    def test_grab_returns_frame(self, source, camera_rig):
        camera_rig.frames = [np.full((480, 640, 3), 7, np.uint8)]
        source.open(0)

        frame = source.grab()

        assert frame.shape == (480, 640, 3)
        assert int(frame[0, 0, 0]) == 7

    def test_single_bad_read_is_transient(self, source, camera_rig):
        camera_rig.frames = [None]
        source.open(0)

        with pytest.raises(TransientFrameError):
            source.grab()
        assert source.grab() is not None

    def test_repeated_bad_reads_mean_device_lost(self, source, camera_rig):
        camera_rig.frames = [None, None, None]
        source.open(0)

        for _ in range(2):
            with pytest.raises(TransientFrameError):
                source.grab()
        with pytest.raises(DeviceError, match="lost"):
            source.grab()

    def test_grab_when_closed(self, source):
        with pytest.raises(DeviceError):
            source.grab()

    def test_release_is_idempotent(self, source, camera_rig):
        source.open(0)
        source.release()
        source.release()

        assert not source.is_opened()
        assert camera_rig.open_events == [("open", 0), ("release", 0)]
