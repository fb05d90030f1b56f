"""
HRV metrics: time domain and Baevsky stress-index statistics.

Computed from a sequence of RR intervals in milliseconds:

    SDNN: population standard deviation of the intervals
    RMSSD: root mean square of successive differences
    pNN50: percentage of successive differences larger than 50 ms
    MxDMn: variational range, max - min
    AMo50: amplitude of the mode, the share of intervals in the most
        populated 50 ms histogram bin
    SI: Baevsky stress index, AMo50 / (2 · Mo · MxDMn), with Mo and
        MxDMn in seconds

Intervals are first cleaned with the 1.5 × IQR rule.  Quartiles are taken
at integer indices of the sorted copy (no interpolation); successive
differences are always computed in the original temporal order.

References
----------
- Task Force of the ESC and NASPE, "Heart rate variability: standards of
  measurement, physiological interpretation and clinical use." 1996.
- Baevsky R.M., Chernikova A.G., "Heart rate variability analysis:
  physiological foundations and main methods." Cardiometry, 2017.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from hrv_monitor.datatypes import HRVMetrics

logger = logging.getLogger(__name__)

MIN_INTERVALS = 20
MIN_CLEANED = 10
NN50_MS = 50.0
HISTOGRAM_BIN_MS = 50.0


def remove_outliers(rr: np.ndarray, min_cleaned: int = MIN_CLEANED) -> np.ndarray:
    """
    Drop intervals outside ``[Q1 - 1.5·IQR, Q3 + 1.5·IQR]``.

    Order is preserved.  If fewer than *min_cleaned* values survive, the
    input is returned unchanged.
    """
    ordered = np.sort(rr)
    n = len(ordered)
    q1 = ordered[n // 4]
    q3 = ordered[(3 * n) // 4]
    iqr = q3 - q1
    mask = (rr >= q1 - 1.5 * iqr) & (rr <= q3 + 1.5 * iqr)
    cleaned = rr[mask]
    if len(cleaned) < min_cleaned:
        logger.debug(
            "IQR filter kept %d of %d intervals; using the unfiltered series.",
            len(cleaned), n,
        )
        return rr
    return cleaned


def histogram_mode(rr: np.ndarray, bin_ms: float = HISTOGRAM_BIN_MS):
    """
    Return ``(mode_ms, count)`` of the *bin_ms*-wide histogram.

    Each interval falls in bucket ``round(rr / bin_ms) * bin_ms`` with
    halves rounded up.  Ties go to the shortest bucket.
    """
    buckets = np.floor(rr / bin_ms + 0.5) * bin_ms
    values, counts = np.unique(buckets, return_counts=True)
    top = int(np.argmax(counts))
    return float(values[top]), int(counts[top])


def compute_hrv_metrics(
    rr_intervals: Sequence[float],
    min_intervals: int = MIN_INTERVALS,
) -> HRVMetrics:
    """
    Compute HRV statistics from *rr_intervals* (milliseconds, temporal order).

    Returns :meth:`HRVMetrics.empty` when fewer than *min_intervals* values
    are given.  The input is not modified.
    """
    rr = np.asarray(rr_intervals, dtype=np.float64)
    if rr.size < max(min_intervals, 2):
        return HRVMetrics.empty()

    cleaned = remove_outliers(rr)
    n = len(cleaned)

    mean_rr = float(cleaned.mean())
    sdnn = float(cleaned.std())

    diffs = np.diff(cleaned)
    if diffs.size:
        rmssd = float(np.sqrt(np.mean(diffs ** 2)))
        pnn50 = 100.0 * float(np.count_nonzero(np.abs(diffs) > NN50_MS)) / diffs.size
    else:
        rmssd = pnn50 = 0.0

    mxdmn = float(cleaned.max() - cleaned.min())
    mode_rr, mode_count = histogram_mode(cleaned)
    amo50 = 100.0 * mode_count / n

    if mxdmn > 0 and mode_rr > 0:
        stress_index = amo50 / (2.0 * (mode_rr / 1000.0) * (mxdmn / 1000.0))
    else:
        stress_index = 0.0

    return HRVMetrics(
        sdnn=sdnn,
        rmssd=rmssd,
        pnn50=pnn50,
        mxdmn=mxdmn,
        amo50=amo50,
        mean_rr=mean_rr,
        mode_rr=mode_rr,
        stress_index=stress_index,
        n_intervals=n,
    )
