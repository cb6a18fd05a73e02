# channel.py
"""Per-camp serial link to a vehicle."""
from __future__ import annotations

import threading
import time
from enum import Enum
from typing import List, Optional

import serial
from loguru import logger
from serial.tools import list_ports

from vehicle_tracking.common import Camp, Pose
from vehicle_tracking.errors import ChannelError

EOL = b"\n"


class ChannelState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


def encode_pose(pose: Pose) -> bytes:
    """``POSE <camp> <x> <y> <heading|->`` as one ASCII line."""
    x, y = pose.position
    heading = "-" if pose.heading_deg is None else f"{pose.heading_deg:.1f}"
    return f"POSE {pose.camp.value} {x:.2f} {y:.2f} {heading}".encode("ascii") + EOL


def available_ports() -> List[str]:
    """Device names of the serial ports present on this machine."""
    return sorted(p.device for p in list_ports.comports())


class VehicleChannel:
    """
    Byte-stream connection to one camp's vehicle.

    An empty port name means the camp has no vehicle wired up: ``open`` is a
    no-op and the channel stays closed.
    """

    def __init__(
        self,
        camp: Camp,
        *,
        timeout: float = 1.0,
        write_timeout: Optional[float] = 0.5,
        settle_time_s: float = 0.2,
    ):
        self.camp = camp
        self.port = ""
        self.baudrate = 0
        self._timeout = timeout
        self._write_timeout = write_timeout
        self._settle_time_s = settle_time_s
        self._ser: Optional[serial.Serial] = None
        self._lock = threading.Lock()

    # ---------------- Serial plumbing ----------------
    @property
    def state(self) -> ChannelState:
        return ChannelState.OPEN if self.is_open() else ChannelState.CLOSED

    def is_open(self) -> bool:
        return bool(self._ser and self._ser.is_open)

    def open(self, port: str, baudrate: int) -> None:
        """Raises ChannelError (and stays closed) if the port cannot be opened."""
        self.close()
        self.port = port
        self.baudrate = baudrate
        if not port:
            logger.info("Vehicle {}: no serial port configured", self.camp.value)
            return
        if baudrate <= 0:
            raise ChannelError(
                f"Vehicle {self.camp.value}: invalid baud rate {baudrate} for {port}",
                self.camp, port,
            )
        try:
            ser = serial.Serial(
                port=port,
                baudrate=baudrate,
                timeout=self._timeout,
                write_timeout=self._write_timeout,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                exclusive=True,
            )
        except (serial.SerialException, ValueError, OSError) as exc:
            raise ChannelError(
                f"Vehicle {self.camp.value}: cannot open serial port {port} at {baudrate} baud: {exc}",
                self.camp, port,
            ) from exc

        time.sleep(self._settle_time_s)
        if not ser.is_open:
            ser.close()
            raise ChannelError(
                f"Vehicle {self.camp.value}: serial port {port} did not open",
                self.camp, port,
            )
        ser.reset_input_buffer()
        with self._lock:
            self._ser = ser
        logger.info("Vehicle {}: serial port {} open at {} baud", self.camp.value, port, baudrate)

    def close(self) -> None:
        with self._lock:
            ser, self._ser = self._ser, None
        if ser is not None and ser.is_open:
            try:
                ser.close()
            except (serial.SerialException, OSError) as exc:
                logger.warning("Vehicle {}: error closing {}: {}", self.camp.value, self.port, exc)
            logger.info("Vehicle {}: serial port {} closed", self.camp.value, self.port)

    def send(self, payload: bytes) -> None:
        """Write ``payload``; a failed write closes the channel and raises ChannelError."""
        with self._lock:
            if not (self._ser and self._ser.is_open):
                raise ChannelError(
                    f"Vehicle {self.camp.value}: send on closed channel ({self.port or 'no port'})",
                    self.camp, self.port,
                )
            try:
                self._ser.write(payload)
                self._ser.flush()
            except (serial.SerialException, OSError) as exc:
                failure = exc
            else:
                return
        self.close()
        raise ChannelError(
            f"Vehicle {self.camp.value}: write to {self.port} failed: {failure}",
            self.camp, self.port,
        ) from failure

    def send_pose(self, pose: Pose) -> None:
        self.send(encode_pose(pose))

    # ---------------- Context / repr ---------------
    def __enter__(self) -> "VehicleChannel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<VehicleChannel camp={self.camp.value} port={self.port!r} ({self.state.value})>"
