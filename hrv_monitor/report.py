"""Plain-text HRV report, as exported at the end of a measurement."""

from __future__ import annotations

import datetime
from typing import Optional

from hrv_monitor.datatypes import HRVMetrics


def format_report(
    metrics: HRVMetrics,
    avg_bpm: int,
    beats: int,
    timestamp: Optional[datetime.datetime] = None,
) -> str:
    """
    Render *metrics* as ``key: value`` lines.

    Parameters
    ----------
    metrics:
        Result of :func:`~hrv_monitor.hrv_metrics.compute_hrv_metrics`.
    avg_bpm:
        Smoothed heart rate shown at the end of the session.
    beats:
        Number of RR intervals recorded in the session.
    timestamp:
        Report time.  Default: now.
    """
    timestamp = timestamp or datetime.datetime.now()
    lines = [
        "HRV REPORT",
        f"Date: {timestamp:%Y-%m-%d %H:%M:%S}",
        f"Avg BPM: {avg_bpm:d}",
        f"Total Beats: {beats:d}",
        "-- Time Domain --",
        f"SDNN: {metrics.sdnn:.1f} ms",
        f"RMSSD: {metrics.rmssd:.1f} ms",
        f"pNN50: {metrics.pnn50:.1f} %",
        "-- Baevsky Stress Index --",
        f"MxDMn: {metrics.mxdmn:.0f} ms",
        f"AMo50: {metrics.amo50:.1f} %",
        f"Mo: {metrics.mode_rr:.0f} ms",
        f"SI: {metrics.stress_index:.1f}",
    ]
    if not metrics.is_valid:
        lines.append("(not enough beats for HRV analysis)")
    return "\n".join(lines) + "\n"
