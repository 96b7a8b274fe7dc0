from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Literal
import numpy as np
from .peaks import peakdet
from .run import ConfigurationError

DEFAULT_SAMPLE_RATE_HZ = 800.0
# Shaft spin-up and carriage acceleration occupy roughly the first 10 s.
DEFAULT_TRANSIENT_SAMPLES = 8000
DEFAULT_THRESHOLD_V = 0.5
# Samples added either side of the first/last marker.
DEFAULT_GUARD_SAMPLES = 2
DEFAULT_SMOOTHING_WINDOW = 40

CountMode = Literal["intervals", "markers"]


@dataclass(frozen=True)
class ShaftSpeed:
    rpm: int
    no_signal: bool
    revolutions: int = 0
    duration_s: float = 0.0
    method: str = "count"


def round_half_away(x: float) -> int:
    """Round half away from zero."""
    return int(math.copysign(math.floor(abs(x) + 0.5), x))


def _no_signal(method: str) -> ShaftSpeed:
    return ShaftSpeed(rpm=0, no_signal=True, method=method)


def _check_series(time, raw):
    t = np.asarray(time, dtype=float).ravel()
    y = np.asarray(raw, dtype=float).ravel()
    if t.size != y.size:
        raise ValueError(f"Time ({t.size}) and signal ({y.size}) differ in length")
    return t, y


def shaft_rpm(
    time,
    raw,
    *,
    sample_rate_hz: float = DEFAULT_SAMPLE_RATE_HZ,
    transient_samples: int = DEFAULT_TRANSIENT_SAMPLES,
    threshold: float = DEFAULT_THRESHOLD_V,
    guard_samples: int = DEFAULT_GUARD_SAMPLES,
    count_mode: CountMode = "intervals",
) -> ShaftSpeed:
    """Shaft speed from a once-per-revolution pulse train.

    The first ``transient_samples`` are dropped and the remainder is scanned
    with :func:`~tankproc.peaks.peakdet`. Each trough is one revolution
    marker. The counting interval runs from the first to the last marker,
    widened by ``guard_samples`` either side and clipped to the record::

        duration = (last - first + 1) / sample_rate_hz
        rpm      = round(revolutions / (duration / 60))

    With ``count_mode="intervals"`` the revolutions counted are the full
    turns between the first and last marker (markers - 1). ``"markers"``
    counts every marker, one more than the turns actually completed.

    A trace with no confirmed maximum or no confirmed minimum (no excursion
    above ``threshold``) gives ``rpm=0`` with ``no_signal=True``.
    """
    t, y = _check_series(time, raw)
    if not sample_rate_hz or sample_rate_hz <= 0:
        raise ConfigurationError(f"Sample rate must be positive, got {sample_rate_hz!r}")
    if transient_samples < 0 or guard_samples < 0:
        raise ConfigurationError("Transient and guard sample counts must be non-negative")
    if count_mode not in ("intervals", "markers"):
        raise ConfigurationError(f"Unknown count_mode: {count_mode}")

    skip = int(transient_samples)
    pk = peakdet(y[skip:], threshold, t[skip:])
    if pk.n_minima == 0 or pk.n_maxima == 0:
        return _no_signal("count")

    first = max(skip + int(pk.min_index[0]) - int(guard_samples), 0)
    last = min(skip + int(pk.min_index[-1]) + int(guard_samples), y.size - 1)
    duration = (last - first + 1) / float(sample_rate_hz)
    revs = pk.n_minima - 1 if count_mode == "intervals" else pk.n_minima
    if revs <= 0:
        return _no_signal("count")
    rpm = round_half_away(revs / (duration / 60.0))
    return ShaftSpeed(rpm=rpm, no_signal=False, revolutions=revs, duration_s=duration, method="count")


def gauss_window(n: int, alpha: float = 2.5) -> np.ndarray:
    """Gaussian window of ``n`` points; ``alpha`` is the inverse width (std = (n-1)/(2*alpha))."""
    if n < 1:
        raise ConfigurationError(f"Window length must be >= 1, got {n}")
    if n == 1:
        return np.ones(1)
    k = np.arange(n) - (n - 1) / 2.0
    return np.exp(-0.5 * (alpha * k / ((n - 1) / 2.0)) ** 2)


def smooth(values, window: int = DEFAULT_SMOOTHING_WINDOW) -> np.ndarray:
    """Unit-gain Gaussian smoothing, output aligned with the input."""
    w = gauss_window(int(window))
    w = w / w.sum()
    return np.convolve(np.asarray(values, dtype=float), w, mode="same")


def shaft_rpm_mean_period(
    time,
    raw,
    *,
    window: int = DEFAULT_SMOOTHING_WINDOW,
    threshold: float = DEFAULT_THRESHOLD_V,
    transient_samples: int = 0,
) -> ShaftSpeed:
    """Shaft speed from the mean spacing of smoothed pulse maxima.

    ``rpm = round(60 / mean(diff(t_max)))``. Needs at least two maxima.
    """
    t, y = _check_series(time, raw)
    if transient_samples < 0:
        raise ConfigurationError("Transient sample count must be non-negative")
    skip = int(transient_samples)
    t, y = t[skip:], y[skip:]
    if y.size < max(int(window), 2):
        return _no_signal("mean_period")
    pk = peakdet(smooth(y, window), threshold, t)
    if pk.n_maxima < 2:
        return _no_signal("mean_period")
    period = float(np.mean(np.diff(pk.max_pos)))
    if period <= 0:
        return _no_signal("mean_period")
    return ShaftSpeed(
        rpm=round_half_away(60.0 / period),
        no_signal=False,
        revolutions=pk.n_maxima - 1,
        duration_s=float(pk.max_pos[-1] - pk.max_pos[0]),
        method="mean_period",
    )
