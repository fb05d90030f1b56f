"""
HRV Monitor — fingertip photoplethysmography with beat-to-beat timing.
Place your finger over the camera lens; the system tracks the luminance
pulse, recovers sub-frame peak times and computes heart-rate-variability
statistics (SDNN, RMSSD, pNN50, MxDMn, AMo50) from the RR intervals.
"""

from hrv_monitor.config import PipelineConfig
from hrv_monitor.hrv_metrics import compute_hrv_metrics
from hrv_monitor.pipeline import Pipeline
from hrv_monitor.datatypes import HRVMetrics

__all__ = ["Pipeline", "PipelineConfig", "HRVMetrics", "compute_hrv_metrics"]

__version__ = "0.2.0"
__author__ = "hrv_monitor"
