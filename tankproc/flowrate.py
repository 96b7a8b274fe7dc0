from __future__ import annotations
import math
from dataclasses import dataclass
import numpy as np
from .linfit import LineFit, fit_line

# Interval-vs-overall disagreement (percent) above which a run is flagged.
DEFAULT_REVIEW_PCT = 5.0
_EPS = 1e-9


@dataclass(frozen=True)
class FlowRate:
    fit: LineFit
    instantaneous: float
    interval_rates: np.ndarray
    interval_mean: float | None
    overall: float
    discrepancy_pct: float | None
    review: bool

    @property
    def slope(self) -> float:
        return self.fit.slope

    @property
    def intercept(self) -> float:
        return self.fit.intercept

    @property
    def insufficient_data(self) -> bool:
        return self.interval_mean is None


def unit_delta(slope: float, intercept: float, lower: float) -> float:
    """Change of the fitted magnitude over ``[lower, lower + 1]`` seconds."""
    return abs(slope * (lower + 1.0) + intercept) - abs(slope * lower + intercept)


def interval_rates(slope: float, intercept: float, t_min: float, t_max: float,
                   offset: float = 0.0) -> np.ndarray:
    """One rate per full one-second sub-interval inside ``[t_min, t_max]``.

    Sub-interval boundaries sit on ``k + offset`` for integer ``k``. A window
    shorter than one second contains none and yields an empty array.
    """
    first = math.ceil(t_min - offset - _EPS)
    last = math.floor(t_max - offset + _EPS)
    lowers = np.arange(first, last, dtype=float) + offset
    return np.array([unit_delta(slope, intercept, a) for a in lowers], dtype=float)


def discrepancy_pct(interval_mean: float | None, overall: float) -> float | None:
    """Percent by which the interval-mean and overall rates disagree.

    ``ratio = |interval_mean| / |overall|``; the result is ``|ratio - 1|·100``.
    Undefined (None) without an interval mean or with a zero overall rate.
    """
    if interval_mean is None or not math.isfinite(overall) or overall == 0:
        return None
    ratio = abs(interval_mean) / abs(overall)
    dev = ratio - 1.0 if ratio > 1.0 else 1.0 - ratio
    return abs(dev * 100.0)


def estimate_flow_rate(time, mass, *, review_pct: float = DEFAULT_REVIEW_PCT,
                       boundary_offset: float = 0.0) -> FlowRate:
    """Mass flow rate of an already-windowed load-cell series.

    Three estimates are produced from the same window:

    - ``instantaneous``: delta of the fitted magnitude across one second at
      the origin, ``|slope + intercept| - |intercept|``;
    - ``interval_mean``: mean of the same delta over every full one-second
      sub-interval of the window (None when there is none);
    - ``overall``: ``(max m - min m) / (max t - min t)``.

    ``review`` is set when the interval/overall discrepancy exceeds
    ``review_pct``.
    """
    t = np.asarray(time, dtype=float).ravel()
    m = np.asarray(mass, dtype=float).ravel()
    fit = fit_line(t, m)
    inst = unit_delta(fit.slope, fit.intercept, 0.0)

    t_min, t_max = float(t.min()), float(t.max())
    rates = interval_rates(fit.slope, fit.intercept, t_min, t_max, boundary_offset)
    interval_mean = float(rates.mean()) if rates.size else None
    overall = (float(m.max()) - float(m.min())) / (t_max - t_min)

    disc = discrepancy_pct(interval_mean, overall)
    review = disc is not None and disc > review_pct
    return FlowRate(
        fit=fit,
        instantaneous=inst,
        interval_rates=rates,
        interval_mean=interval_mean,
        overall=overall,
        discrepancy_pct=disc,
        review=review,
    )
