from __future__ import annotations
"""
Run records for towing-tank propulsion tests.

A run is one steady-speed carriage pass recorded at a fixed sample rate:
a time column plus eleven raw voltage channels, the calibration record that
was in force for that run, and the windowing policy that trims the
acceleration/deceleration transients before any steady-state estimate.

Channel layout
--------------
0  wave probe          (calibrated: load cell mass, g)
1  Kiel probe stbd     (raw voltage)
2  Kiel probe port     (raw voltage)
3  static pressure stbd
4  static pressure port
5  shaft speed stbd    (once-per-rev pulse train, V)
6  shaft speed port
7  thrust stbd         (calibrated: g)
8  thrust port
9  torque stbd         (calibrated: N·m)
10 torque port

The flat calibration array carries 24 values: the (zero, factor) pair of
the time column followed by one pair per channel in the order above.
"""

from dataclasses import dataclass, field
from enum import IntEnum
import math
import numpy as np


class ConfigurationError(ValueError):
    """Setup problem that makes a run (or group) impossible to reduce."""


class ChannelRole(IntEnum):
    WAVE_PROBE = 0
    KP_STBD = 1
    KP_PORT = 2
    STATIC_STBD = 3
    STATIC_PORT = 4
    RPM_STBD = 5
    RPM_PORT = 6
    THRUST_STBD = 7
    THRUST_PORT = 8
    TORQUE_STBD = 9
    TORQUE_PORT = 10


N_CHANNELS = len(ChannelRole)
CALIBRATION_LENGTH = 2 * (N_CHANNELS + 1)


@dataclass(frozen=True)
class ChannelCal:
    zero: float
    factor: float


@dataclass(frozen=True)
class CalibrationRecord:
    """Zero offsets and calibration factors for the time column and channels."""
    time: ChannelCal
    channels: tuple[ChannelCal, ...]

    def __post_init__(self):
        if len(self.channels) != N_CHANNELS:
            raise ConfigurationError(
                f"Calibration record needs {N_CHANNELS} channel pairs, got {len(self.channels)}"
            )

    @classmethod
    def from_flat(cls, values) -> "CalibrationRecord":
        vals = [float(v) for v in values]
        if len(vals) != CALIBRATION_LENGTH:
            raise ConfigurationError(
                f"Calibration array must hold {CALIBRATION_LENGTH} values, got {len(vals)}"
            )
        pairs = [ChannelCal(vals[i], vals[i + 1]) for i in range(0, CALIBRATION_LENGTH, 2)]
        return cls(time=pairs[0], channels=tuple(pairs[1:]))

    def to_flat(self) -> list[float]:
        out = [self.time.zero, self.time.factor]
        for c in self.channels:
            out += [c.zero, c.factor]
        return out

    def for_role(self, role: ChannelRole | int) -> ChannelCal:
        return self.channels[int(role)]

    def require_factor(self, role: ChannelRole | int) -> ChannelCal:
        """Return the channel pair, refusing a zero or non-finite factor."""
        cal = self.for_role(role)
        if cal.factor == 0 or not math.isfinite(cal.factor) or not math.isfinite(cal.zero):
            raise ConfigurationError(
                f"Calibration factor for {ChannelRole(int(role)).name} is {cal.factor!r}"
            )
        return cal


@dataclass(frozen=True)
class WindowPolicy:
    """Samples dropped from the start and the end of a run."""
    start_samples: int
    end_samples: int

    def slice_for(self, n: int) -> slice:
        s, e = int(self.start_samples), int(self.end_samples)
        if s < 0 or e < 0:
            raise ConfigurationError(f"Window offsets must be non-negative (start={s}, end={e})")
        if s + e >= n:
            raise ConfigurationError(
                f"Window start={s} end={e} leaves no samples in a record of {n}"
            )
        return slice(s, n - e)


def _frozen(a) -> np.ndarray:
    out = np.array(a, dtype=float, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class Run:
    """One recorded run. Immutable once built; arrays are read-only copies."""
    run_id: int
    time: np.ndarray
    channels: np.ndarray
    calibration: CalibrationRecord
    window: WindowPolicy = field(default_factory=lambda: WindowPolicy(8000, 8000))

    def __post_init__(self):
        if int(self.run_id) < 1:
            raise ConfigurationError(f"Run id must be >= 1, got {self.run_id}")
        t = _frozen(self.time)
        ch = _frozen(self.channels)
        if t.ndim != 1:
            raise ConfigurationError("Time column must be one-dimensional")
        if ch.ndim != 2 or ch.shape[0] != N_CHANNELS:
            raise ConfigurationError(
                f"Expected {N_CHANNELS} channels, got array of shape {ch.shape}"
            )
        if ch.shape[1] != t.size:
            raise ConfigurationError(
                f"Channel length {ch.shape[1]} does not match time length {t.size}"
            )
        # validates the window against this record length
        self.window.slice_for(t.size)
        object.__setattr__(self, "run_id", int(self.run_id))
        object.__setattr__(self, "time", t)
        object.__setattr__(self, "channels", ch)

    @property
    def n_samples(self) -> int:
        return int(self.time.size)

    @property
    def window_slice(self) -> slice:
        return self.window.slice_for(self.n_samples)

    def channel(self, role: ChannelRole | int) -> np.ndarray:
        return self.channels[int(role)]

    def windowed(self, values: np.ndarray) -> np.ndarray:
        return np.asarray(values)[self.window_slice]
