from __future__ import annotations
import numpy as np
from .run import ChannelRole, ConfigurationError, Run

# Custom wave-probe factor used in place of the logged one when the
# logged calibration of the load cell is known to be stale.
WAVE_PROBE_CUSTOM_CF = 46.001


def to_real_units(raw, zero: float, factor: float):
    """Convert raw channel voltages to physical units.

    ``physical = factor * (raw - zero)``

    Returns
    -------
    (physical, mean) : (ndarray, float)
        Calibrated series (same length as ``raw``) and its arithmetic mean.
        The mean of an empty series is NaN.
    """
    raw = np.asarray(raw, dtype=float)
    physical = float(factor) * (raw - float(zero))
    mean = float(np.mean(physical)) if physical.size else float("nan")
    return physical, mean


def from_real_units(physical, zero: float, factor: float) -> np.ndarray:
    """Inverse of :func:`to_real_units`."""
    if factor == 0:
        raise ConfigurationError("Cannot invert a zero calibration factor")
    return np.asarray(physical, dtype=float) / float(factor) + float(zero)


def calibrate_channel(run: Run, role: ChannelRole, factor_override: float | None = None):
    """Calibrate one channel of ``run`` over its full record.

    ``factor_override`` replaces the logged factor (the zero is kept).
    """
    cal = run.calibration.require_factor(role)
    factor = cal.factor
    if factor_override is not None:
        if factor_override == 0:
            raise ConfigurationError(f"Override factor for {role.name} is zero")
        factor = float(factor_override)
    return to_real_units(run.channel(role), cal.zero, factor)
