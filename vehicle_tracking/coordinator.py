# coordinator.py
"""
Applies a new :class:`SystemConfig` to the running pipeline.

Order, each step independently fallible:

1. camera     – open the requested device (new index: before releasing the old one)
2. transform  – rebuild from the negotiated frame size; keep the old one on failure
                or when step 1 failed
3. per camp   – new locator, then a new serial channel; failures stay in that camp
4. report     – one :class:`ReconfigurationResult` with every step error

Every resource is fully built before it is handed to ``publish`` and the
resource it replaces is released only after ``publish`` has returned.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional, Tuple

from loguru import logger

from vehicle_tracking.camera import FrameSource
from vehicle_tracking.channel import VehicleChannel
from vehicle_tracking.common import Camp, PerCamp
from vehicle_tracking.config import CaptureConfig, SystemConfig
from vehicle_tracking.errors import ChannelError, ConfigurationError, DeviceError
from vehicle_tracking.locator import VehicleLocator
from vehicle_tracking.transform import CalibratedTransform


@dataclass(frozen=True)
class RuntimeState:
    """The resources the detection loop reads at the top of each iteration."""
    config: Optional[SystemConfig] = None
    frame_source: Optional[FrameSource] = None
    transform: Optional[CalibratedTransform] = None
    locators: PerCamp[Optional[VehicleLocator]] = field(
        default_factory=lambda: PerCamp(a=None, b=None)
    )
    channels: PerCamp[VehicleChannel] = field(
        default_factory=lambda: PerCamp.build(VehicleChannel)
    )

    def release(self) -> None:
        """Close every device held by this state."""
        if self.frame_source is not None:
            self.frame_source.release()
        for _, channel in self.channels.items():
            channel.close()


@dataclass(frozen=True)
class StepError:
    step: str                      # "camera" | "transform" | "channel"
    error: Exception
    camp: Optional[Camp] = None

    def __str__(self) -> str:
        where = f"camp {self.camp.value} " if self.camp is not None else ""
        return f"{where}{self.step}: {self.error}"


@dataclass(frozen=True)
class ReconfigurationResult:
    state: RuntimeState
    errors: Tuple[StepError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def fatal(self) -> bool:
        """No camera means no pipeline."""
        return self.state.frame_source is None

    def errors_for(self, camp: Camp) -> Tuple[StepError, ...]:
        return tuple(e for e in self.errors if e.camp is camp)


class ReconfigurationCoordinator:
    def __init__(
        self,
        publish: Optional[Callable[[RuntimeState], None]] = None,
        *,
        frame_source_factory: Callable[[CaptureConfig], FrameSource] = FrameSource,
        channel_factory: Callable[[Camp], VehicleChannel] = VehicleChannel,
    ):
        self._publish = publish or (lambda state: None)
        self._frame_source_factory = frame_source_factory
        self._channel_factory = channel_factory

    # ------------------------------------------------------------------ #
    #   S T E P S
    # ------------------------------------------------------------------ #
    def _apply_camera(
        self, config: SystemConfig, state: RuntimeState, errors: List[StepError]
    ) -> RuntimeState:
        old = state.frame_source
        same_device = old is not None and old.camera_index == config.camera
        if same_device:
            # One device cannot be opened twice: retire it before reopening.
            state = replace(state, frame_source=None)
            self._publish(state)
            old.release()

        source = self._frame_source_factory(config.capture)
        try:
            source.open(config.camera)
        except DeviceError as exc:
            source.release()
            logger.error("Camera {} could not be opened: {}", config.camera, exc)
            errors.append(StepError("camera", exc))
            return state

        state = replace(state, frame_source=source)
        self._publish(state)
        if old is not None and not same_device:
            old.release()
        return state

    def _apply_transform(
        self, config: SystemConfig, state: RuntimeState, errors: List[StepError]
    ) -> RuntimeState:
        if state.frame_source is None:
            return state
        try:
            transform = CalibratedTransform(
                camera_frame_size=state.frame_source.frame_size,
                monitor_frame_size=config.monitor_frame_size,
                court_size=config.court_size,
                calibration_corners=config.calibration_corners,
            )
        except ConfigurationError as exc:
            logger.error("Court transform not rebuilt, keeping previous: {}", exc)
            errors.append(StepError("transform", exc))
            return state
        state = replace(state, transform=transform)
        self._publish(state)
        return state

    def _apply_camp(
        self,
        camp: Camp,
        config: SystemConfig,
        state: RuntimeState,
        errors: List[StepError],
    ) -> RuntimeState:
        vcfg = config.vehicles[camp]
        locator = VehicleLocator(camp, vcfg.locator)
        old = state.channels[camp]

        if old.is_open() and old.port == vcfg.serial_port:
            # Same port: the old handle has to go before the port can be reopened.
            state = replace(
                state,
                locators=state.locators.replace(camp, locator),
                channels=state.channels.replace(camp, self._channel_factory(camp)),
            )
            self._publish(state)
            old.close()

        channel = self._channel_factory(camp)
        try:
            channel.open(vcfg.serial_port, vcfg.baudrate)
        except ChannelError as exc:
            logger.error("{}", exc)
            errors.append(StepError("channel", exc, camp))

        state = replace(
            state,
            locators=state.locators.replace(camp, locator),
            channels=state.channels.replace(camp, channel),
        )
        self._publish(state)
        old.close()
        return state

    # ------------------------------------------------------------------ #
    #   P U B L I C   A P I
    # ------------------------------------------------------------------ #
    def apply(self, config: SystemConfig, previous: RuntimeState) -> ReconfigurationResult:
        """Build a new state from ``config``; ``previous`` stays valid until replaced."""
        logger.info("Applying configuration (camera {})", config.camera)
        errors: List[StepError] = []

        state = replace(previous, config=config)
        state = self._apply_camera(config, state, errors)
        if not errors:
            # A failed camera step keeps the previous transform as well.
            state = self._apply_transform(config, state, errors)
        for camp in Camp:
            state = self._apply_camp(camp, config, state, errors)

        result = ReconfigurationResult(state=state, errors=tuple(errors))
        if result.ok:
            logger.info("Configuration applied")
        else:
            logger.warning(
                "Configuration applied with {} error(s): {}",
                len(errors), "; ".join(str(e) for e in errors),
            )
        return result
