from __future__ import annotations
from dataclasses import dataclass
import math
import numpy as np
from .calibration import calibrate_channel
from .physics import grams_to_newtons
from .pipeline import PipelineConfig, estimate_shaft_speeds
from .run import ChannelRole, Run


@dataclass(frozen=True)
class WindowStats:
    mean: float
    std: float      # sample std (ddof=1)
    sem: float      # std / sqrt(n)
    n: int


def window_stats(values) -> WindowStats:
    """Mean, sample standard deviation and standard error of a window.

    NaN samples are ignored. With fewer than two samples std and sem are NaN.
    """
    v = np.asarray(values, dtype=float).ravel()
    v = v[np.isfinite(v)]
    n = int(v.size)
    if n == 0:
        return WindowStats(float("nan"), float("nan"), float("nan"), 0)
    mean = float(v.mean())
    if n < 2:
        return WindowStats(mean, float("nan"), float("nan"), n)
    std = float(v.std(ddof=1))
    return WindowStats(mean, std, std / math.sqrt(n), n)


def run_statistics(run: Run, cfg: PipelineConfig | None = None) -> dict:
    """Window statistics of one run as a flat row.

    Kiel probe voltages are raw; thrust (N) and torque (N·m) are calibrated,
    with the port channels taken as magnitudes. Shaft speeds are appended.
    """
    cfg = cfg or PipelineConfig()
    sl = run.window_slice
    thrust_stbd, _ = calibrate_channel(run, ChannelRole.THRUST_STBD)
    thrust_port, _ = calibrate_channel(run, ChannelRole.THRUST_PORT)
    torque_stbd, _ = calibrate_channel(run, ChannelRole.TORQUE_STBD)
    torque_port, _ = calibrate_channel(run, ChannelRole.TORQUE_PORT)
    series = {
        "kp_stbd_v": run.channel(ChannelRole.KP_STBD),
        "kp_port_v": run.channel(ChannelRole.KP_PORT),
        "thrust_stbd_n": grams_to_newtons(thrust_stbd),
        "thrust_port_n": np.abs(grams_to_newtons(thrust_port)),
        "torque_stbd_nm": torque_stbd,
        "torque_port_nm": np.abs(torque_port),
    }
    row: dict = {"run_id": run.run_id}
    for name, values in series.items():
        ws = window_stats(np.asarray(values)[sl])
        row[f"{name}_mean"] = ws.mean
        row[f"{name}_std"] = ws.std
        row[f"{name}_sem"] = ws.sem
    row["n_window"] = int(len(run.time[sl]))
    stbd, port = estimate_shaft_speeds(run, cfg)
    row["rpm_stbd"] = stbd.rpm
    row["rpm_port"] = port.rpm
    return row
