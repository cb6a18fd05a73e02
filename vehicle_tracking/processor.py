# processor.py
"""Glue logic that wires camera → locators → court transform → serial channels."""
from __future__ import annotations

import queue
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from vehicle_tracking.camera import FrameSource
from vehicle_tracking.channel import VehicleChannel, encode_pose
from vehicle_tracking.common import Camp, Detection, FrameReport, PerCamp, Pose
from vehicle_tracking.config import CaptureConfig, SystemConfig
from vehicle_tracking.coordinator import (
    ReconfigurationCoordinator,
    ReconfigurationResult,
    RuntimeState,
)
from vehicle_tracking.errors import (
    ChannelError,
    DeviceError,
    ProcessingError,
    TransientFrameError,
    VehicleTrackingError,
)

PosePolicy = Callable[[Sequence[Pose]], Sequence[Pose]]
ErrorSink = Callable[[VehicleTrackingError], None]


def _all_poses(poses: Sequence[Pose]) -> Sequence[Pose]:
    return poses


class TrackingProcessor:
    """
    The detection loop. Resources are read from the published
    :class:`RuntimeState` once, at the top of each iteration. ``publish``
    swaps the state and then waits for the iteration in progress to end, so
    a swapped-out resource is never touched after ``publish`` returns.
    """

    def __init__(
        self,
        *,
        frame_source_factory: Callable[[CaptureConfig], FrameSource] = FrameSource,
        channel_factory: Callable[[Camp], VehicleChannel] = VehicleChannel,
        pose_policy: PosePolicy = _all_poses,
        on_error: Optional[ErrorSink] = None,
        on_frame: Optional[Callable[[FrameReport], None]] = None,
        on_reconfigured: Optional[Callable[[ReconfigurationResult], None]] = None,
        idle_sleep_s: float = 0.05,
        results_maxsize: int = 8,
    ):
        self.coordinator = ReconfigurationCoordinator(
            self.publish,
            frame_source_factory=frame_source_factory,
            channel_factory=channel_factory,
        )
        self.pose_policy = pose_policy
        self.on_error = on_error
        self.on_frame = on_frame
        self.on_reconfigured = on_reconfigured
        self.idle_sleep_s = idle_sleep_s

        self._state = RuntimeState()
        self._cond = threading.Condition()
        self._busy = False
        self._busy_ident: Optional[int] = None
        self._iterations = 0
        self._reconfig_lock = threading.Lock()
        self._masks: Dict[Camp, Optional[np.ndarray]] = {c: None for c in Camp}
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Bounded; the oldest result is dropped when nobody drains it.
        self.results: "queue.Queue[ReconfigurationResult]" = queue.Queue(maxsize=results_maxsize)
        self.latest: Optional[FrameReport] = None

        # Runtime metrics
        self.total_frames = 0
        self.frame_count = 0
        self.proc_time_sum = 0.0
        self.proc_samples = 0
        self.fps_timer_start = time.time()
        self.disp_fps = 0.0
        self.disp_proc_ms_avg = 0.0

    # ---------------------------------------------------------------------
    #                         State publication
    # ---------------------------------------------------------------------
    @property
    def state(self) -> RuntimeState:
        return self._state

    def publish(self, state: RuntimeState) -> None:
        """Swap in ``state``; waits for the iteration in progress to finish."""
        with self._cond:
            self._state = state
            if self._busy and threading.get_ident() != self._busy_ident:
                target = self._iterations + 1
                self._cond.wait_for(lambda: self._iterations >= target)

    def mask(self, camp: Camp) -> Optional[np.ndarray]:
        """Last binary mask for ``camp`` when its ``show_mask`` flag is set."""
        return self._masks[camp]

    # ---------------------------------------------------------------------
    #                           Reconfiguration
    # ---------------------------------------------------------------------
    def apply(self, config: SystemConfig) -> ReconfigurationResult:
        """Run the coordinator on the calling thread."""
        with self._reconfig_lock:
            result = self.coordinator.apply(config, self._state)
            self._post_result(result)
        if self.on_reconfigured:
            self.on_reconfigured(result)
        return result

    def _post_result(self, result: ReconfigurationResult) -> None:
        while True:
            try:
                self.results.put_nowait(result)
                return
            except queue.Full:
                try:
                    dropped = self.results.get_nowait()
                except queue.Empty:
                    continue
                logger.debug("Dropping undrained reconfiguration result ({} error(s))",
                             len(dropped.errors))

    def reconfigure(self, config: SystemConfig) -> threading.Thread:
        """Apply ``config`` off the loop thread; the result lands in ``results``."""
        t = threading.Thread(target=self.apply, args=(config,), name="reconfigure", daemon=True)
        t.start()
        return t

    # ---------------------------------------------------------------------
    #                            Error reporting
    # ---------------------------------------------------------------------
    def _report(self, err: VehicleTrackingError) -> None:
        logger.error("{}", err)
        if self.on_error:
            self.on_error(err)

    def _retire_source(self, state: RuntimeState) -> None:
        """Unpublish and release ``state``'s frame source unless a newer state replaced it."""
        with self._cond:
            if self._state is not state or state.frame_source is None:
                return
            self._state = replace(state, frame_source=None)
        state.frame_source.release()

    # ---------------------------------------------------------------------
    #                          Main per-frame loop
    # ---------------------------------------------------------------------
    def _locate_and_send(
        self, camp: Camp, state: RuntimeState, frame: np.ndarray
    ) -> Tuple[Tuple[Detection, ...], Tuple[Pose, ...]]:
        locator = state.locators[camp]
        if locator is None:
            return (), ()

        detections = tuple(locator.locate(frame))
        self._masks[camp] = locator.mask
        if locator.last_error is not None:
            self._report(locator.last_error)

        transform = state.transform
        if transform is None or not detections:
            return detections, ()

        poses: List[Pose] = []
        for det in detections:
            poses.append(
                Pose(
                    camp=camp,
                    position=transform.to_court(det.position_px),
                    heading_deg=transform.heading_to_court(det.position_px, det.orientation_deg),
                    area=det.area,
                )
            )
        selected = tuple(self.pose_policy(poses))

        channel = state.channels[camp]
        if channel.is_open():
            try:
                for pose in selected:
                    channel.send(encode_pose(pose))
            except ChannelError as exc:
                self._report(exc)
        return detections, selected

    def step(self) -> Optional[FrameReport]:
        """One iteration. Returns None when no frame was processed."""
        with self._cond:
            state = self._state
            source = state.frame_source
            if source is None:
                return None
            self._busy = True
            self._busy_ident = threading.get_ident()

        try:
            try:
                frame = source.grab()
            except TransientFrameError as exc:
                logger.debug("{}", exc)
                return None
            except DeviceError as exc:
                self._report(exc)
                source.release()
                with self._cond:
                    if self._state is state:
                        self._state = replace(state, frame_source=None)
                return None

            ts = time.time()
            tic = time.perf_counter()
            results = {camp: self._locate_and_send(camp, state, frame) for camp in Camp}
            proc_ms = (time.perf_counter() - tic) * 1000.0
        finally:
            with self._cond:
                self._busy = False
                self._iterations += 1
                self._cond.notify_all()

        report = FrameReport(
            t_capture=ts,
            img_size=(frame.shape[1], frame.shape[0]),
            detections=PerCamp.build(lambda c: results[c][0]),
            poses=PerCamp.build(lambda c: results[c][1]),
        )
        self._update_stats(ts, proc_ms)
        self.latest = report
        if self.on_frame:
            self.on_frame(report)
        return report

    def _update_stats(self, now: float, proc_ms: float) -> None:
        self.total_frames += 1
        self.proc_time_sum += proc_ms
        self.proc_samples += 1
        self.frame_count += 1

        if now - self.fps_timer_start >= 1.0:
            self.disp_fps = self.frame_count / (now - self.fps_timer_start)
            if self.proc_samples > 0:
                self.disp_proc_ms_avg = self.proc_time_sum / self.proc_samples
            self.frame_count = 0
            self.proc_time_sum = 0.0
            self.proc_samples = 0
            self.fps_timer_start = now

    # ---------------------------------------------------------------------
    #                             Public run()
    # ---------------------------------------------------------------------
    def run(self) -> None:
        """Loop until :meth:`stop` is called."""
        logger.info("Detection loop started")
        while not self._stop.is_set():
            if self._state.frame_source is None:
                time.sleep(self.idle_sleep_s)
                continue
            state = self._state
            try:
                self.step()
            except Exception as exc:
                logger.exception("Detection loop error")
                self._report(ProcessingError(f"Detection loop error: {exc!r}"))
                self._retire_source(state)
        logger.info("Detection loop stopped. Total frames: {}", self.total_frames)

    def start(self) -> threading.Thread:
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="detection-loop", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def cleanup(self) -> None:
        """Stop the loop and release camera and serial ports."""
        self.stop()
        with self._reconfig_lock:
            old = self._state
            self.publish(RuntimeState())
            old.release()
