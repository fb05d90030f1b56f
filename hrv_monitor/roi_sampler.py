"""
ROI luminance sampler.

Reduces a camera intensity plane to the mean and standard deviation of a
fixed box in the frame centre.  With the torch on and a fingertip pressed
against the lens, the box brightness rises and falls with the blood
volume in the tissue; that mean is the raw PPG sample.

Only every other row and column of the box is read, which quarters the
cost without changing the statistics of a smooth, occluded field.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from hrv_monitor.datatypes import FrameSample

logger = logging.getLogger(__name__)


class RoiSampler:
    """
    Centred-box luminance statistics.

    Parameters
    ----------
    half_range:
        Half side of the sampling box in pixels.  The box spans
        ``[centre - half_range, centre + half_range)`` on both axes.
        Default: 40.
    step:
        Sub-sampling step along both axes.  Default: 2.
    """

    def __init__(self, half_range: int = 40, step: int = 2) -> None:
        self.half_range = half_range
        self.step = step

    def sample(
        self,
        plane,
        timestamp: float,
        width: Optional[int] = None,
        height: Optional[int] = None,
        stride: Optional[int] = None,
    ) -> Optional[FrameSample]:
        """
        Return the ROI statistics of *plane*, or *None* if the box holds no
        pixel (degenerate geometry).

        Parameters
        ----------
        plane:
            Either a 2-D intensity array (H × W), or a flat buffer (bytes /
            1-D array) laid out row-major with *stride* bytes per row.
        timestamp:
            Frame time in milliseconds on the pipeline clock.
        width, height, stride:
            Geometry of a flat buffer.  Ignored when *plane* is 2-D.
        """
        if isinstance(plane, np.ndarray) and plane.ndim == 2:
            height, width = plane.shape
            ys, xs = self._grid(width, height)
            if ys.size == 0 or xs.size == 0:
                return None
            pixels = plane[np.ix_(ys, xs)]
        else:
            if width is None or height is None:
                raise ValueError("width and height are required for a flat buffer")
            if isinstance(plane, (bytes, bytearray, memoryview)):
                flat = np.frombuffer(plane, dtype=np.uint8)
            else:
                flat = np.asarray(plane).reshape(-1)
            stride = width if stride is None else stride
            ys, xs = self._grid(width, height)
            if ys.size == 0 or xs.size == 0:
                return None
            idx = ys[:, None] * stride + xs[None, :]
            pixels = flat[idx[idx < flat.size]]

        if pixels.size == 0:
            return None

        pixels = pixels.astype(np.float64)
        # Population statistics over the sampled pixels.
        return FrameSample(
            timestamp=timestamp,
            mean_intensity=float(pixels.mean()),
            std_dev=float(pixels.std()),
        )

    def sample_bgr(self, frame: np.ndarray, timestamp: float) -> Optional[FrameSample]:
        """
        Convenience wrapper for BGR camera frames (H × W × 3, uint8).

        The frame is converted to its luminance plane first, matching the
        Y plane of a YUV420 camera stream.
        """
        if frame.ndim == 3:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        return self.sample(frame, timestamp)

    def _grid(self, width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
        """Row and column indices of the sub-sampled box, clipped to the plane."""
        cx, cy = width // 2, height // 2
        r = self.half_range
        ys = np.arange(cy - r, cy + r, self.step)
        xs = np.arange(cx - r, cx + r, self.step)
        return ys[(ys >= 0) & (ys < height)], xs[(xs >= 0) & (xs < width)]
