#!/usr/bin/env python3
"""
HRV Monitor – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH      Camera resolution (default: 320x240)
    --fps INT             Target frame rate (default: 30)
    --camera-index INT    OpenCV camera index (fallback, default: 0)
    --no-exposure-lock    Leave auto-exposure running
    --duration INT        Measurement length in seconds (default: 60)
    --permissive          300–1500 ms RR band with adaptive artifact rule
    --rr-min / --rr-max   Override the physiological RR band (ms)
    --refractory INT      Refractory period in frames
    --no-interpolation    Disable parabolic peak refinement
    --autostart           Start measuring immediately
    --report PATH         Write the HRV report to this file
    --headless            Run without display window (log to stdout)

Keyboard shortcuts (when a window is open)
------------------------------------------
    SPACE    – start a measurement
    x        – stop the measurement and show results
    r        – reset
    c        – print / save the report
    q / ESC  – quit
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
import time
from pathlib import Path
from typing import Optional

# Must be set before cv2 is imported so Qt5 uses X11/XWayland instead of
# looking for a Wayland plugin that is not bundled with pip-installed opencv.
import os
os.environ.setdefault("QT_QPA_PLATFORM", "xcb")

import cv2

from hrv_monitor.camera import FingertipCamera
from hrv_monitor.config import PipelineConfig
from hrv_monitor.pipeline import Pipeline
from hrv_monitor.report import format_report
from hrv_monitor.session import SessionState
from hrv_monitor.visualizer import Visualizer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("hrv_monitor")

WINDOW_NAME = "HRV Monitor"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fingertip PPG heart-rate-variability monitor",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="320x240",
                        help="Camera resolution, e.g. 320x240")
    parser.add_argument("--fps", type=int, default=30,
                        help="Target capture frame rate")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index (fallback)")
    parser.add_argument("--no-exposure-lock", action="store_true",
                        help="Do not lock exposure / white balance after warm-up")
    parser.add_argument("--duration", type=int, default=60,
                        help="Measurement length in finger-present seconds")
    parser.add_argument("--permissive", action="store_true",
                        help="300-1500 ms RR band with the adaptive artifact rule")
    parser.add_argument("--rr-min", type=float, default=None,
                        help="Minimum accepted RR interval (ms)")
    parser.add_argument("--rr-max", type=float, default=None,
                        help="Maximum accepted RR interval (ms)")
    parser.add_argument("--refractory", type=int, default=None,
                        help="Refractory period in frames")
    parser.add_argument("--no-interpolation", action="store_true",
                        help="Disable parabolic sub-frame peak refinement")
    parser.add_argument("--autostart", action="store_true",
                        help="Start measuring as soon as the camera is open")
    parser.add_argument("--report", type=Path, default=None,
                        help="Write the HRV report to this file")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log to stdout only")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log every peak and RR decision")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Translate CLI flags into a :class:`PipelineConfig`."""
    overrides = {
        "measurement_duration_s": args.duration,
        "frame_duration_ms": 1000.0 / args.fps,
        "interpolate": not args.no_interpolation,
    }
    if args.rr_min is not None:
        overrides["rr_min_ms"] = args.rr_min
    if args.rr_max is not None:
        overrides["rr_max_ms"] = args.rr_max
    if args.refractory is not None:
        overrides["refractory_frames"] = args.refractory

    if args.permissive:
        return PipelineConfig.permissive(**overrides)
    return dataclasses.replace(PipelineConfig(), **overrides)


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def emit_report(pipeline: Pipeline, path: Optional[Path]) -> str:
    """Compute metrics over the session RR series and print / save them."""
    metrics = pipeline.compute_metrics()
    text = format_report(metrics, pipeline.display_bpm, len(pipeline.rr_intervals))
    print(text)
    if path is not None:
        path.write_text(text, encoding="utf-8")
        logger.info("Report written to %s", path)
    return text


def run(args: argparse.Namespace) -> int:
    if args.verbose:
        logging.getLogger("hrv_monitor").setLevel(logging.DEBUG)

    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 320x240.")
        return 1

    try:
        config = build_config(args)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    resolution = (res_w, res_h)
    camera = FingertipCamera(
        resolution=resolution,
        fps=args.fps,
        lock_exposure=not args.no_exposure_lock,
        camera_index=args.camera_index,
    )
    pipeline = Pipeline(config)
    vis = Visualizer(
        resolution=resolution,
        roi_half_range=config.roi_half_range,
        chart_size=config.chart_buffer_size,
    )

    logger.info("Starting HRV monitor.  SPACE starts a measurement, 'q' quits.")
    if not args.headless:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(WINDOW_NAME, res_w * 2, res_h * 2)

    metrics = None
    try:
        with camera:
            if args.autostart:
                pipeline.start()
            next_tick = time.monotonic() + 1.0

            for frame in camera.frames():
                pipeline.process_bgr(frame)
                vis.consume(pipeline.events.drain())

                now = time.monotonic()
                if now >= next_tick:
                    next_tick += 1.0
                    if args.headless:
                        state = pipeline.state.value
                        print(
                            f"[{time.strftime('%H:%M:%S')}] BPM={pipeline.display_bpm:d}  "
                            f"quality={pipeline.signal_quality:.2f}  "
                            f"finger={pipeline.finger_present}  state={state}  "
                            f"beats={len(pipeline.rr_intervals)}"
                        )
                    if pipeline.tick():
                        metrics = pipeline.compute_metrics()
                        emit_report(pipeline, args.report)
                        if args.headless:
                            break

                if args.headless:
                    continue

                cv2.imshow(WINDOW_NAME, vis.draw(frame, metrics))
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):          # q or ESC
                    logger.info("Quit requested by user.")
                    break
                elif key == ord(" "):
                    metrics = None
                    pipeline.start()
                    next_tick = time.monotonic() + 1.0
                elif key == ord("x") and pipeline.state is SessionState.MEASURING:
                    pipeline.stop()
                    metrics = pipeline.compute_metrics()
                    vis.finished_beats = len(pipeline.rr_intervals)
                elif key == ord("r"):
                    pipeline.reset()
                    vis.clear()
                    metrics = None
                elif key == ord("c"):
                    emit_report(pipeline, args.report)

    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        if not args.headless:
            cv2.destroyAllWindows()

    if pipeline.dropped_frames:
        logger.info("Dropped %d frames while busy.", pipeline.dropped_frames)
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


if __name__ == "__main__":
    sys.exit(main())
