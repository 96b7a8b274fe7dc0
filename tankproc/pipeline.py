from __future__ import annotations
"""
Per-run reduction: raw run record -> RunResult.

Steps for one run
-----------------
1) Sample rate and record length from the time column.
2) Calibrate the wave probe (load cell) and estimate the mass flow rate on
   the analysis window.
3) Full-record means of Kiel probe voltage, thrust and torque.
4) Shaft speed of both shafts from the pulse channels.
5) Shaft power from torque and speed.

A configuration problem aborts only the affected run; the run loop records
it as absent and carries on with the rest.
"""

from dataclasses import dataclass, field, fields
import logging
from typing import Iterable, Literal
import numpy as np

from .calibration import calibrate_channel
from .flowrate import DEFAULT_REVIEW_PCT, estimate_flow_rate
from .physics import grams_to_newtons, shaft_power_w
from .results import ResultsTable, RunResult
from .rpm import (
    DEFAULT_GUARD_SAMPLES,
    DEFAULT_SAMPLE_RATE_HZ,
    DEFAULT_SMOOTHING_WINDOW,
    DEFAULT_THRESHOLD_V,
    DEFAULT_TRANSIENT_SAMPLES,
    ShaftSpeed,
    round_half_away,
    shaft_rpm,
    shaft_rpm_mean_period,
)
from .run import ChannelRole, ConfigurationError, Run, WindowPolicy

logger = logging.getLogger(__name__)

# 10 s at 800 Hz trimmed from each end of a standard run, 2 s for short runs.
DEFAULT_WINDOW_SAMPLES = 8000
SHORT_RUN_WINDOW_SAMPLES = 1600


@dataclass
class PipelineConfig:
    sample_rate_hz: float = DEFAULT_SAMPLE_RATE_HZ
    window_samples: int = DEFAULT_WINDOW_SAMPLES       # dropped at the start
    end_window_samples: int | None = None              # dropped at the end; None = same as start
    short_window_samples: int = SHORT_RUN_WINDOW_SAMPLES
    short_runs: tuple[int, ...] = field(default_factory=tuple)
    rpm_method: Literal["count", "mean_period"] = "count"
    rpm_count_mode: Literal["intervals", "markers"] = "intervals"
    rpm_transient_samples: int = DEFAULT_TRANSIENT_SAMPLES
    rpm_threshold_v: float = DEFAULT_THRESHOLD_V
    rpm_guard_samples: int = DEFAULT_GUARD_SAMPLES
    smoothing_window: int = DEFAULT_SMOOTHING_WINDOW
    wave_probe_cf: float | None = None                 # replaces the logged wave-probe factor
    review_pct: float = DEFAULT_REVIEW_PCT
    interval_offset_s: float = 0.0

    def __post_init__(self):
        self.short_runs = tuple(int(r) for r in (self.short_runs or ()))
        if not self.sample_rate_hz or self.sample_rate_hz <= 0:
            raise ConfigurationError(f"sample_rate_hz must be positive, got {self.sample_rate_hz!r}")
        if self.rpm_method not in ("count", "mean_period"):
            raise ConfigurationError(f"Unknown rpm_method: {self.rpm_method}")
        if self.rpm_count_mode not in ("intervals", "markers"):
            raise ConfigurationError(f"Unknown rpm_count_mode: {self.rpm_count_mode}")
        if self.rpm_threshold_v <= 0:
            raise ConfigurationError("rpm_threshold_v must be positive")
        for name in ("window_samples", "short_window_samples", "rpm_transient_samples", "rpm_guard_samples"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative")

    @classmethod
    def from_dict(cls, d: dict) -> "PipelineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(d) - known
        if unknown:
            raise ConfigurationError(f"Unknown pipeline settings: {sorted(unknown)}")
        return cls(**d)

    def window_for(self, run_id: int) -> WindowPolicy:
        if int(run_id) in self.short_runs:
            return WindowPolicy(self.short_window_samples, self.short_window_samples)
        end = self.window_samples if self.end_window_samples is None else self.end_window_samples
        return WindowPolicy(self.window_samples, end)


def estimate_shaft_speeds(run: Run, cfg: PipelineConfig) -> tuple[ShaftSpeed, ShaftSpeed]:
    """(stbd, port) shaft speeds using the configured method."""
    out = []
    for role in (ChannelRole.RPM_STBD, ChannelRole.RPM_PORT):
        raw = run.channel(role)
        if cfg.rpm_method == "mean_period":
            sp = shaft_rpm_mean_period(
                run.time, raw,
                window=cfg.smoothing_window,
                threshold=cfg.rpm_threshold_v,
                transient_samples=cfg.rpm_transient_samples,
            )
        else:
            sp = shaft_rpm(
                run.time, raw,
                sample_rate_hz=cfg.sample_rate_hz,
                transient_samples=cfg.rpm_transient_samples,
                threshold=cfg.rpm_threshold_v,
                guard_samples=cfg.rpm_guard_samples,
                count_mode=cfg.rpm_count_mode,
            )
        out.append(sp)
    return out[0], out[1]


def _record_rate(run: Run, cfg: PipelineConfig) -> tuple[int, int]:
    n = run.n_samples
    t_end = float(run.time[-1])
    fs = round_half_away(n / t_end) if np.isfinite(t_end) and t_end > 0 else round_half_away(cfg.sample_rate_hz)
    return fs, round_half_away(n / fs) if fs else 0


def _mean(role: ChannelRole, run: Run) -> float:
    _, mean = calibrate_channel(run, role)
    return mean


def process_run(run: Run, cfg: PipelineConfig | None = None) -> RunResult:
    cfg = cfg or PipelineConfig()
    logger.info("Run %d start: %d samples, window %s", run.run_id, run.n_samples, run.window)
    fs, record_time = _record_rate(run, cfg)

    mass, _ = calibrate_channel(run, ChannelRole.WAVE_PROBE, cfg.wave_probe_cf)
    sl = run.window_slice
    flow = estimate_flow_rate(
        run.time[sl], mass[sl],
        review_pct=cfg.review_pct,
        boundary_offset=cfg.interval_offset_s,
    )
    if flow.insufficient_data:
        logger.warning("Run %d: no full one-second interval in window, interval flow rate unavailable", run.run_id)
    if flow.review:
        logger.warning(
            "Run %d: interval and overall flow rates disagree by %.2f%% (> %.2f%%)",
            run.run_id, flow.discrepancy_pct, cfg.review_pct,
        )

    thrust_stbd = abs(grams_to_newtons(_mean(ChannelRole.THRUST_STBD, run)))
    thrust_port = abs(grams_to_newtons(_mean(ChannelRole.THRUST_PORT, run)))
    torque_stbd = abs(_mean(ChannelRole.TORQUE_STBD, run))
    torque_port = abs(_mean(ChannelRole.TORQUE_PORT, run))

    stbd, port = estimate_shaft_speeds(run, cfg)
    for side, sp in (("stbd", stbd), ("port", port)):
        if sp.no_signal:
            logger.warning("Run %d: no %s shaft-speed signal above %.3g V", run.run_id, side, cfg.rpm_threshold_v)

    res = RunResult(
        run_id=run.run_id,
        sample_rate_hz=fs,
        n_samples=run.n_samples,
        record_time_s=record_time,
        mass_flow_rate=abs(flow.instantaneous),
        mass_flow_rate_interval=None if flow.interval_mean is None else abs(flow.interval_mean),
        mass_flow_rate_overall=abs(flow.overall),
        flow_discrepancy_pct=flow.discrepancy_pct,
        flow_insufficient_data=flow.insufficient_data,
        flow_review=flow.review,
        fit_slope=flow.fit.slope,
        fit_intercept=flow.fit.intercept,
        fit_slope_se=flow.fit.slope_se,
        fit_intercept_se=flow.fit.intercept_se,
        fit_r2=flow.fit.r2,
        kp_stbd_v=float(np.mean(run.channel(ChannelRole.KP_STBD))),
        kp_port_v=float(np.mean(run.channel(ChannelRole.KP_PORT))),
        thrust_stbd_n=thrust_stbd,
        thrust_port_n=thrust_port,
        torque_stbd_nm=torque_stbd,
        torque_port_nm=torque_port,
        rpm_stbd=stbd.rpm,
        rpm_port=port.rpm,
        rpm_stbd_no_signal=stbd.no_signal,
        rpm_port_no_signal=port.no_signal,
        power_stbd_w=shaft_power_w(torque_stbd, stbd.rpm),
        power_port_w=shaft_power_w(torque_port, port.rpm),
    )
    logger.info(
        "Run %d: mass flow %.4f kg/s, rpm stbd %d port %d",
        run.run_id, res.mass_flow_rate, res.rpm_stbd, res.rpm_port,
    )
    return res


def process_runs(runs: Iterable[Run], cfg: PipelineConfig | None = None,
                 table: ResultsTable | None = None) -> ResultsTable:
    """Reduce every run into ``table`` (a new one when omitted)."""
    cfg = cfg or PipelineConfig()
    table = table if table is not None else ResultsTable()
    for run in runs:
        try:
            table.add(process_run(run, cfg))
        except ConfigurationError as exc:
            logger.error("Run %d aborted: %s", run.run_id, exc)
            table.mark_absent(run.run_id, str(exc))
    return table
