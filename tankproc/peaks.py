from __future__ import annotations
"""
Threshold peak detector (peakdet).

Algorithm
---------
Scan the series once, tracking the running maximum and running minimum
(and their positions). Start in "looking for a maximum" mode.

- Looking for a maximum: once the series drops below ``running_max - delta``
  the running maximum is confirmed as a peak, the running minimum restarts
  at the current sample and the mode flips.
- Looking for a minimum: once the series rises above ``running_min + delta``
  the running minimum is confirmed as a trough, the running maximum restarts
  at the current sample and the mode flips.

Confirmed extrema therefore strictly alternate, starting with a maximum.
Excursions smaller than ``delta`` are never reported.
"""

from dataclasses import dataclass
import numpy as np
from .run import ConfigurationError


@dataclass(frozen=True)
class PeakSet:
    max_index: np.ndarray
    max_pos: np.ndarray
    max_val: np.ndarray
    min_index: np.ndarray
    min_pos: np.ndarray
    min_val: np.ndarray

    @property
    def n_maxima(self) -> int:
        return int(self.max_index.size)

    @property
    def n_minima(self) -> int:
        return int(self.min_index.size)

    @property
    def empty(self) -> bool:
        return self.n_maxima == 0 and self.n_minima == 0

    @property
    def maxima(self) -> np.ndarray:
        """(n, 2) array of (position, value)."""
        return np.column_stack([self.max_pos, self.max_val]) if self.n_maxima else np.empty((0, 2))

    @property
    def minima(self) -> np.ndarray:
        return np.column_stack([self.min_pos, self.min_val]) if self.n_minima else np.empty((0, 2))

    def merged(self) -> list[tuple[float, float, str]]:
        """All extrema in scan order as (position, value, 'max'|'min')."""
        items = [(int(i), float(p), float(v), "max")
                 for i, p, v in zip(self.max_index, self.max_pos, self.max_val)]
        items += [(int(i), float(p), float(v), "min")
                  for i, p, v in zip(self.min_index, self.min_pos, self.min_val)]
        items.sort(key=lambda r: r[0])
        return [(p, v, k) for _, p, v, k in items]


def peakdet(values, delta: float, x=None) -> PeakSet:
    """Detect alternating maxima and minima separated by at least ``delta``.

    Parameters
    ----------
    values : array_like
        Series to scan.
    delta : float
        Detection threshold, strictly positive, in the units of ``values``.
    x : array_like, optional
        Positions reported for each sample (e.g. time stamps). Defaults to
        the sample index.
    """
    v = np.asarray(values, dtype=float).ravel()
    if x is None:
        xs = np.arange(v.size, dtype=float)
    else:
        xs = np.asarray(x, dtype=float).ravel()
        if xs.size != v.size:
            raise ValueError(f"Positions ({xs.size}) and values ({v.size}) differ in length")
    try:
        delta = float(delta)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Peak threshold must be a number, got {delta!r}") from None
    if not np.isfinite(delta) or delta <= 0:
        raise ConfigurationError(f"Peak threshold must be positive, got {delta!r}")

    max_idx: list[int] = []
    min_idx: list[int] = []
    mn, mx = np.inf, -np.inf
    mn_i = mx_i = -1
    look_for_max = True

    for i, this in enumerate(v):
        if this > mx:
            mx, mx_i = this, i
        if this < mn:
            mn, mn_i = this, i
        if look_for_max:
            if this < mx - delta:
                max_idx.append(mx_i)
                mn, mn_i = this, i
                look_for_max = False
        else:
            if this > mn + delta:
                min_idx.append(mn_i)
                mx, mx_i = this, i
                look_for_max = True

    ia = np.asarray(max_idx, dtype=int)
    ib = np.asarray(min_idx, dtype=int)
    return PeakSet(
        max_index=ia, max_pos=xs[ia], max_val=v[ia],
        min_index=ib, min_pos=xs[ib], min_val=v[ib],
    )
