"""
Fingertip camera.

Yields BGR frames from picamera2 on a Raspberry Pi, or from OpenCV
VideoCapture anywhere else.

Contact PPG measures small brightness changes through tissue, so the
camera must not adapt to them: once the warm-up frames have let
auto-exposure settle, exposure and white balance are frozen.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# picamera2 ships with Raspberry Pi OS only.
try:
    from picamera2 import Picamera2
    _PICAMERA2_AVAILABLE = True
except ImportError:
    _PICAMERA2_AVAILABLE = False
    logger.info("picamera2 not found – using OpenCV VideoCapture.")

# OpenCV's V4L2 backend encodes manual exposure as 0.25 (auto is 0.75).
_V4L2_MANUAL_EXPOSURE = 0.25


class _PiBackend:
    name = "picamera2"

    def __init__(self, resolution: Tuple[int, int], fps: int) -> None:
        self._cam = Picamera2()
        self._cam.configure(self._cam.create_video_configuration(
            main={"size": resolution, "format": "RGB888"},
            buffer_count=4,
        ))
        period_us = int(1_000_000 / fps)
        try:
            self._cam.set_controls({"FrameDurationLimits": (period_us, period_us)})
        except Exception as exc:                          # noqa: BLE001
            logger.warning("Frame rate not applied: %s", exc)
        self._cam.start()

    def read(self) -> Optional[np.ndarray]:
        frame = self._cam.capture_array("main")
        if frame is None:
            return None
        # libcamera's RGB888 is laid out B, G, R in memory.
        return frame[:, :, :3]

    def freeze_exposure(self) -> bool:
        try:
            self._cam.set_controls({"AeEnable": False, "AwbEnable": False})
        except Exception as exc:                          # noqa: BLE001
            logger.warning("Exposure not locked: %s", exc)
            return False
        return True

    def release(self) -> None:
        self._cam.stop()
        self._cam.close()


class _OpenCVBackend:
    name = "opencv"

    def __init__(self, resolution: Tuple[int, int], fps: int, index: int) -> None:
        self._cap = cv2.VideoCapture(index)
        if not self._cap.isOpened():
            raise RuntimeError(f"No video device at index {index}")
        width, height = resolution
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        self._cap.set(cv2.CAP_PROP_FPS, fps)

    def read(self) -> Optional[np.ndarray]:
        ok, frame = self._cap.read()
        return frame if ok else None

    def freeze_exposure(self) -> bool:
        locked = self._cap.set(cv2.CAP_PROP_AUTO_EXPOSURE, _V4L2_MANUAL_EXPOSURE)
        self._cap.set(cv2.CAP_PROP_AUTO_WB, 0)
        return bool(locked)

    def release(self) -> None:
        self._cap.release()


class FingertipCamera:
    """
    Frame source for contact PPG.

    Parameters
    ----------
    resolution:
        (width, height) of captured frames.  Only the central box is read,
        so a low resolution is enough.
    fps:
        Requested frame rate.  Peak interpolation assumes the configured
        frame period, so keep the two in step.
    lock_exposure:
        Freeze exposure and white balance after warm-up.
    warmup_frames:
        Frames read and discarded before locking.
    camera_index:
        VideoCapture index used when picamera2 is unavailable.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (320, 240),
        fps: int = 30,
        lock_exposure: bool = True,
        warmup_frames: int = 8,
        camera_index: int = 0,
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.lock_exposure = lock_exposure
        self.warmup_frames = warmup_frames
        self.camera_index = camera_index
        self._backend = None

    @property
    def is_open(self) -> bool:
        return self._backend is not None

    def open(self) -> None:
        if _PICAMERA2_AVAILABLE:
            backend = _PiBackend(self.resolution, self.fps)
        else:
            backend = _OpenCVBackend(self.resolution, self.fps, self.camera_index)

        for _ in range(self.warmup_frames):
            backend.read()
        locked = self.lock_exposure and backend.freeze_exposure()
        if self.lock_exposure and not locked:
            logger.warning("Exposure still automatic; the pulse baseline may drift.")

        self._backend = backend
        logger.info(
            "Camera open: %s %dx%d @ %d fps, exposure %s.",
            backend.name, *self.resolution, self.fps,
            "locked" if locked else "auto",
        )

    def close(self) -> None:
        if self._backend is None:
            return
        self._backend.release()
        self._backend = None
        logger.info("Camera closed.")

    def __enter__(self) -> "FingertipCamera":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def read_frame(self) -> Optional[np.ndarray]:
        """One BGR frame (H × W × 3, uint8), or *None* if the read failed."""
        if self._backend is None:
            raise RuntimeError("Camera is not open.  Call open() first.")
        frame = self._backend.read()
        if frame is None:
            logger.warning("Empty frame from %s.", self._backend.name)
        return frame

    def frames(self, max_failures: int = 10) -> Iterator[np.ndarray]:
        """
        Yield frames while the camera is open.

        Stops after *max_failures* consecutive failed reads.
        """
        failures = 0
        while self._backend is not None:
            frame = self.read_frame()
            if frame is not None:
                failures = 0
                yield frame
                continue
            failures += 1
            if failures >= max_failures:
                logger.error("%d failed reads in a row; giving up.", failures)
                return
