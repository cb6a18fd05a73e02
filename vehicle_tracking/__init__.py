# vehicle_tracking/__init__.py
"""Vehicle-tracking package – re-export high-level API."""
from .common import Camp, Detection, FrameReport, PerCamp, Pose            # noqa: F401
from .config import (                                                      # noqa: F401
    CalibrationCorners, CaptureConfig, LocatorConfig, SystemConfig,
    ThresholdRange, VehicleConfig, default_config,
)
from .errors import (                                                      # noqa: F401
    ChannelError, ConfigurationError, DeviceError, ProcessingError,
    TransientFrameError, VehicleTrackingError,
)
from .camera import FrameSource                                            # noqa: F401
from .channel import ChannelState, VehicleChannel, available_ports, encode_pose  # noqa: F401
from .locator import VehicleLocator, largest_area                          # noqa: F401
from .transform import CalibratedTransform                                 # noqa: F401
from .coordinator import (                                                 # noqa: F401
    ReconfigurationCoordinator, ReconfigurationResult, RuntimeState, StepError,
)
from .processor import TrackingProcessor                                   # noqa: F401
