"""
Tests for the camera → court transform.
"""
import numpy as np
import pytest

from vehicle_tracking.config import CalibrationCorners
from vehicle_tracking.errors import ConfigurationError
from vehicle_tracking.transform import CalibratedTransform

COURT = (200, 150)


@pytest.fixture
def full_frame():
    return CalibratedTransform((640, 480), (960, 720), COURT, CalibrationCorners.full_frame(640, 480))


@pytest.fixture
def skewed_corners():
    """A court seen at an angle: far edge shorter than the near one."""
    return CalibrationCorners(
        top_left=(180.0, 60.0),
        top_right=(470.0, 70.0),
        bottom_right=(610.0, 440.0),
        bottom_left=(30.0, 430.0),
    )


class TestCalibratedTransform:
    def test_court_centre(self, full_frame):
        assert full_frame.to_court((320, 240)) == pytest.approx((100.0, 75.0), abs=1e-4)

    def test_corners_map_to_court_corners(self, skewed_corners):
        tf = CalibratedTransform((640, 480), (960, 720), COURT, skewed_corners)
        expected = [(0, 0), (200, 0), (200, 150), (0, 150)]
        for corner, court in zip(skewed_corners.as_tuple(), expected):
            assert tf.to_court(corner) == pytest.approx(court, abs=1e-3)

    def test_court_to_camera_inverts(self, skewed_corners):
        tf = CalibratedTransform((640, 480), (960, 720), COURT, skewed_corners)
        pt = (300.0, 250.0)
        assert tf.court_to_camera(tf.to_court(pt)) == pytest.approx(pt, abs=1e-3)

    def test_display_mapping_ignores_calibration(self, skewed_corners):
        tf = CalibratedTransform((640, 480), (960, 720), COURT, skewed_corners)
        assert tf.to_display((320, 240)) == pytest.approx((480.0, 360.0), abs=1e-4)
        assert tf.to_display((640, 480)) == pytest.approx((960.0, 720.0), abs=1e-4)

    def test_heading_follows_court_axes(self, full_frame):
        h0 = full_frame.heading_to_court((320, 240), 0.0)
        assert min(h0, 360.0 - h0) < 1e-3
        assert full_frame.heading_to_court((320, 240), 90.0) == pytest.approx(90.0, abs=1e-3)
        assert full_frame.heading_to_court((320, 240), None) is None

    def test_all_corners_equal_is_configuration_error(self):
        same = CalibrationCorners((5.0, 5.0), (5.0, 5.0), (5.0, 5.0), (5.0, 5.0))
        with pytest.raises(ConfigurationError):
            CalibratedTransform((640, 480), (960, 720), COURT, same)

    def test_collinear_corners_rejected(self):
        line = CalibrationCorners((0.0, 0.0), (100.0, 0.0), (200.0, 0.0), (0.0, 100.0))
        with pytest.raises(ConfigurationError, match="collinear"):
            CalibratedTransform((640, 480), (960, 720), COURT, line)

    def test_bad_sizes_rejected(self):
        with pytest.raises(ConfigurationError):
            CalibratedTransform((0, 480), (960, 720), COURT, CalibrationCorners.full_frame(640, 480))

    def test_immutable(self, full_frame):
        with pytest.raises(AttributeError):
            full_frame._court_size = (1, 1)
        with pytest.raises(ValueError):
            full_frame.court_matrix[0, 0] = 42.0
        assert full_frame.court_size == COURT
        assert isinstance(full_frame.court_matrix, np.ndarray)
