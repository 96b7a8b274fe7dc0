
"""
tankproc - towing-tank waterjet propulsion run reduction: flow rate, shaft speed, statistics.
"""

__version__ = "0.1.0"

from .run import (
    ConfigurationError,
    ChannelRole,
    ChannelCal,
    CalibrationRecord,
    WindowPolicy,
    Run,
)
from .calibration import to_real_units, from_real_units, calibrate_channel, WAVE_PROBE_CUSTOM_CF
from .peaks import peakdet, PeakSet
from .rpm import ShaftSpeed, shaft_rpm, shaft_rpm_mean_period, gauss_window, smooth
from .linfit import LineFit, fit_line
from .flowrate import FlowRate, estimate_flow_rate, interval_rates, discrepancy_pct, unit_delta
from .physics import grams_to_newtons, shaft_power_w, WaterjetGeometry, waterjet_coefficients
from .results import RunResult, AbsentRun, ResultsTable
from .pipeline import PipelineConfig, process_run, process_runs, estimate_shaft_speeds
from .stats import WindowStats, window_stats, run_statistics
from .aggregate import (
    Propulsion,
    RunGroup,
    AveragedRecord,
    average_group,
    average_groups,
    system_totals,
    fit_rate_curve,
    RateCurve,
)
from .presets import PRESETS, get_preset

__all__ = [
    "__version__",
    "ConfigurationError", "ChannelRole", "ChannelCal", "CalibrationRecord", "WindowPolicy", "Run",
    "to_real_units", "from_real_units", "calibrate_channel", "WAVE_PROBE_CUSTOM_CF",
    "peakdet", "PeakSet",
    "ShaftSpeed", "shaft_rpm", "shaft_rpm_mean_period", "gauss_window", "smooth",
    "LineFit", "fit_line",
    "FlowRate", "estimate_flow_rate", "interval_rates", "discrepancy_pct", "unit_delta",
    "grams_to_newtons", "shaft_power_w", "WaterjetGeometry", "waterjet_coefficients",
    "RunResult", "AbsentRun", "ResultsTable",
    "PipelineConfig", "process_run", "process_runs", "estimate_shaft_speeds",
    "WindowStats", "window_stats", "run_statistics",
    "Propulsion", "RunGroup", "AveragedRecord", "average_group", "average_groups",
    "system_totals", "fit_rate_curve", "RateCurve",
    "PRESETS", "get_preset",
]
