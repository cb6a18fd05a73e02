# main.py
"""
Entry-point for the vehicle-tracking core, headless.

Runs the detection loop with the factory defaults and prints the court
position of each camp's vehicle once per second. Edit the config blobs in
``main()`` to pick the camera, serial ports and colour thresholds.
"""
from __future__ import annotations

import time
from dataclasses import replace

from vehicle_tracking.channel import available_ports
from vehicle_tracking.common import Camp, FrameReport
from vehicle_tracking.config import default_config
from vehicle_tracking.coordinator import ReconfigurationResult
from vehicle_tracking.locator import largest_area
from vehicle_tracking.log import configure_logging
from vehicle_tracking.processor import TrackingProcessor


def _print_report(rpt: FrameReport) -> None:
    parts = []
    for camp in Camp:
        poses = rpt.poses[camp]
        if poses:
            x, y = poses[0].position
            parts.append(f"{camp.value}=({x:.1f},{y:.1f})")
        else:
            parts.append(f"{camp.value}=--")
    print("  ".join(parts))


def _print_result(result: ReconfigurationResult) -> None:
    if result.ok:
        print("Configuration applied.")
        return
    for err in result.errors:
        print(f"  ! {err}")
    if result.fatal:
        print("No camera available – pick another camera index and retry.")


# ────────────────────────────────────────────────────────────────────────────
#   M A I N
# ────────────────────────────────────────────────────────────────────────────
def main() -> None:
    configure_logging("INFO")
    print("Initializing Vehicle-Tracking System…")

    # -------------------- Config blobs --------------------
    cfg = default_config()
    cfg = cfg.with_vehicle(Camp.A, replace(cfg.vehicles[Camp.A], serial_port=""))  # e.g. "/dev/ttyUSB0"
    cfg = cfg.with_vehicle(Camp.B, replace(cfg.vehicles[Camp.B], serial_port=""))

    # ------------------------ Banner ----------------------
    print(f"Camera: idx={cfg.camera}, request {cfg.capture.width}x{cfg.capture.height}")
    print(f"Court: {cfg.court_size[0]}x{cfg.court_size[1]}")
    for camp, vcfg in cfg.vehicles.items():
        loc = vcfg.locator
        print(
            f"Vehicle {camp.value}: H={loc.hue.min}..{loc.hue.max} "
            f"S={loc.saturation.min}..{loc.saturation.max} "
            f"V={loc.value.min}..{loc.value.max} min_area={loc.min_area} "
            f"port={vcfg.serial_port or 'DISABLED'}@{vcfg.baudrate}"
        )
    print(f"Serial ports present: {', '.join(available_ports()) or 'none'}")

    # ------------------------ Run -------------------------
    proc = TrackingProcessor(pose_policy=largest_area, on_reconfigured=_print_result)
    proc.apply(cfg)
    proc.start()
    try:
        while True:
            time.sleep(1.0)
            if proc.latest is not None:
                _print_report(proc.latest)
    except KeyboardInterrupt:
        print("\nStopped by user.")
    finally:
        proc.cleanup()
    print("Main program finished.")


if __name__ == "__main__":
    main()
