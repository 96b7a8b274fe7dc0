from __future__ import annotations
"""
First-degree least squares with parameter standard errors.

    y ≈ intercept + slope·x
    S              = sqrt(SSE / (n - 2))
    SE(slope)      = S · sqrt(n / (n·Σx² - (Σx)²))
    SE(intercept)  = S · sqrt(Σx² / (n·Σx² - (Σx)²))

Sums are taken about the mean of x (n·Σx² - (Σx)² = n·Σ(x - x̄)²) so that
time stamps far from zero do not cost precision.

Numerical guards:
- fewer than two points, or no spread in x, is refused.
- with exactly two points S is undefined and the standard errors are NaN.
- R² = 0 when the total sum of squares is zero.
"""

from dataclasses import dataclass
import math
import numpy as np
from .run import ConfigurationError


@dataclass(frozen=True)
class LineFit:
    slope: float
    intercept: float
    n: int
    s: float               # residual standard deviation
    slope_se: float
    intercept_se: float
    r2: float

    @property
    def slope_rel_error(self) -> float:
        return self.slope_se / self.slope if self.slope else float("nan")

    @property
    def intercept_rel_error(self) -> float:
        return self.intercept_se / self.intercept if self.intercept else float("nan")

    def __call__(self, x):
        return self.slope * np.asarray(x, dtype=float) + self.intercept


def fit_line(x, y) -> LineFit:
    x = np.asarray(x, dtype=float).ravel()
    y = np.asarray(y, dtype=float).ravel()
    if x.size != y.size:
        raise ValueError(f"x ({x.size}) and y ({y.size}) differ in length")
    n = int(x.size)
    if n < 2:
        raise ConfigurationError(f"Line fit needs at least two points, got {n}")
    xm, ym = float(x.mean()), float(y.mean())
    dx, dy = x - xm, y - ym
    Sdxx = float(np.dot(dx, dx))
    if Sdxx <= 0 or not math.isfinite(Sdxx):
        raise ConfigurationError("Line fit needs distinct x values")
    slope = float(np.dot(dx, dy)) / Sdxx
    intercept = ym - slope * xm

    resid = y - (slope * x + intercept)
    sse = float(np.dot(resid, resid))
    sst = float(np.dot(dy, dy))
    r2 = 1.0 - sse / sst if sst > 0 else 0.0

    if n > 2:
        s = math.sqrt(sse / (n - 2))
        den = n * Sdxx
        slope_se = s * math.sqrt(n / den)
        intercept_se = s * math.sqrt(float(np.dot(x, x)) / den)
    else:
        s = slope_se = intercept_se = float("nan")
    return LineFit(slope, intercept, n, s, slope_se, intercept_se, r2)
