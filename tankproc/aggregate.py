from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import logging
import math
from typing import Iterable, Sequence
import numpy as np
import pandas as pd

from .physics import WaterjetGeometry, waterjet_coefficients
from .results import AbsentRun, ResultsTable, RunResult
from .rpm import round_half_away
from .run import ConfigurationError

logger = logging.getLogger(__name__)

# Run Result fields averaged across a group (every numeric field; the
# boolean flags are reported through no_signal and per-field filtering).
AVERAGED_FIELDS = (
    "sample_rate_hz",
    "n_samples",
    "record_time_s",
    "mass_flow_rate",
    "mass_flow_rate_interval",
    "mass_flow_rate_overall",
    "flow_discrepancy_pct",
    "fit_slope",
    "fit_intercept",
    "fit_slope_se",
    "fit_intercept_se",
    "fit_r2",
    "kp_stbd_v",
    "kp_port_v",
    "thrust_stbd_n",
    "thrust_port_n",
    "torque_stbd_nm",
    "torque_port_nm",
    "rpm_stbd",
    "rpm_port",
    "power_stbd_w",
    "power_port_w",
)
# Fields whose value is meaningless without a shaft-speed signal on that side.
_SIGNAL_GATED = {
    "rpm_stbd": "rpm_stbd_no_signal",
    "power_stbd_w": "rpm_stbd_no_signal",
    "rpm_port": "rpm_port_no_signal",
    "power_port_w": "rpm_port_no_signal",
}
_ROUNDED = ("rpm_stbd", "rpm_port")


class Propulsion(str, Enum):
    PORT = "port"
    STBD = "stbd"
    COMBINED = "combined"

    @classmethod
    def parse(cls, value) -> "Propulsion":
        """Accept an enum member, its name/value, or the legacy codes 1/2/3."""
        if isinstance(value, cls):
            return value
        codes = {1: cls.PORT, 2: cls.STBD, 3: cls.COMBINED}
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            if int(value) in codes:
                return codes[int(value)]
        elif isinstance(value, str):
            key = value.strip().lower()
            if key.isdigit() and int(key) in codes:
                return codes[int(key)]
            for m in cls:
                if key in (m.value, m.name.lower()):
                    return m
        raise ConfigurationError(f"Unknown propulsion configuration: {value!r}")


@dataclass(frozen=True)
class RunGroup:
    """Runs repeated at one propulsion configuration and shaft-speed setpoint."""
    propulsion: Propulsion
    setpoint_rpm: float
    run_ids: tuple[int, ...]

    def __post_init__(self):
        if self.propulsion is None:
            raise ConfigurationError("Run group has no propulsion configuration")
        object.__setattr__(self, "propulsion", Propulsion.parse(self.propulsion))
        if self.setpoint_rpm is None or not math.isfinite(float(self.setpoint_rpm)):
            raise ConfigurationError("Run group has no shaft-speed setpoint")
        object.__setattr__(self, "setpoint_rpm", float(self.setpoint_rpm))
        ids = tuple(dict.fromkeys(int(r) for r in (self.run_ids or ())))
        if not ids:
            raise ConfigurationError(
                f"Run group {self.propulsion.value}@{self.setpoint_rpm:g} rpm has no runs"
            )
        object.__setattr__(self, "run_ids", ids)

    @classmethod
    def from_range(cls, propulsion, setpoint_rpm: float, first: int, last: int) -> "RunGroup":
        """Group of the contiguous runs ``first..last`` (inclusive)."""
        if last < first:
            raise ConfigurationError(f"Empty run range {first}..{last}")
        return cls(propulsion, setpoint_rpm, tuple(range(int(first), int(last) + 1)))

    @classmethod
    def from_dict(cls, d: dict) -> "RunGroup":
        prop = d.get("propulsion")
        sp = d.get("setpoint_rpm")
        if "runs" in d:
            return cls(prop, sp, tuple(d["runs"] or ()))
        if "first" in d and "last" in d:
            return cls.from_range(prop, sp, d["first"], d["last"])
        raise ConfigurationError("Run group needs 'runs' or 'first'/'last'")


@dataclass
class AveragedRecord:
    propulsion: Propulsion
    setpoint_rpm: float
    run_ids: tuple[int, ...]
    missing_run_ids: tuple[int, ...]
    mean: dict
    std: dict | None = None
    sem: dict | None = None
    no_signal: dict = field(default_factory=dict)
    totals: dict = field(default_factory=dict)
    waterjet: dict = field(default_factory=dict)

    @property
    def n_runs(self) -> int:
        return len(self.run_ids)

    @property
    def active_rpm(self) -> float | None:
        """Measured shaft speed of the shaft(s) driving this configuration."""
        if self.propulsion is Propulsion.PORT:
            return self.mean.get("rpm_port")
        if self.propulsion is Propulsion.STBD:
            return self.mean.get("rpm_stbd")
        return self.totals.get("rpm_mean")

    def to_row(self) -> dict:
        row = {
            "propulsion": self.propulsion.value,
            "setpoint_rpm": self.setpoint_rpm,
            "n_runs": self.n_runs,
            "run_ids": ";".join(str(r) for r in self.run_ids),
            "missing_run_ids": ";".join(str(r) for r in self.missing_run_ids),
        }
        for k in AVERAGED_FIELDS:
            row[k] = self.mean.get(k)
            if self.std is not None:
                row[f"{k}_std"] = self.std.get(k)
                row[f"{k}_sem"] = (self.sem or {}).get(k)
        row["rpm_stbd_no_signal"] = self.no_signal.get("stbd", False)
        row["rpm_port_no_signal"] = self.no_signal.get("port", False)
        row.update({f"total_{k}": v for k, v in self.totals.items()})
        row.update(self.waterjet)
        return row


def _usable(r: RunResult, name: str) -> bool:
    flag = _SIGNAL_GATED.get(name)
    if flag and getattr(r, flag):
        return False
    v = getattr(r, name)
    return v is not None and math.isfinite(float(v))


def system_totals(values, no_signal: dict | None = None) -> dict:
    """Total system thrust, torque and power from per-shaft values.

    ``values`` is a :class:`RunResult` or a mapping with the same field names.
    Shafts without a speed signal are left out of ``rpm_mean``.
    """
    if isinstance(values, RunResult):
        no_signal = {"stbd": values.rpm_stbd_no_signal, "port": values.rpm_port_no_signal}
        values = values.to_dict()
    no_signal = no_signal or {}

    def _sum(a: str, b: str):
        va, vb = values.get(a), values.get(b)
        if va is None and vb is None:
            return None
        return float(va or 0.0) + float(vb or 0.0)

    rpms = [values.get(f"rpm_{s}") for s in ("stbd", "port") if not no_signal.get(s)]
    rpms = [float(r) for r in rpms if r is not None]
    return {
        "thrust_n": _sum("thrust_stbd_n", "thrust_port_n"),
        "torque_nm": _sum("torque_stbd_nm", "torque_port_nm"),
        "power_w": _sum("power_stbd_w", "power_port_w"),
        "rpm_mean": float(np.mean(rpms)) if rpms else None,
    }


def average_group(table: ResultsTable, group: RunGroup, statistics: bool = False,
                  geometry: WaterjetGeometry | None = None) -> AveragedRecord:
    """Average the Run Results of one group.

    Absent or unprocessed members are skipped (and logged). Per field, runs
    whose value is flagged (no shaft-speed signal, no interval flow rate) are
    left out of that field only. With ``statistics=True`` the sample std
    (ddof=1) and standard error across runs are reported where at least two
    values contribute.
    """
    present: list[RunResult] = []
    missing: list[int] = []
    for rid in group.run_ids:
        r = table.get(rid)
        if isinstance(r, RunResult):
            present.append(r)
        else:
            missing.append(rid)
            reason = r.reason if isinstance(r, AbsentRun) else "not processed"
            logger.warning("Group %s@%g: run %d skipped (%s)",
                           group.propulsion.value, group.setpoint_rpm, rid, reason)
    if not present:
        raise ConfigurationError(
            f"Group {group.propulsion.value}@{group.setpoint_rpm:g} rpm has no processed runs"
        )

    mean, std, sem = {}, {}, {}
    for name in AVERAGED_FIELDS:
        vals = np.array([float(getattr(r, name)) for r in present if _usable(r, name)], dtype=float)
        if vals.size == 0:
            mean[name] = None
            std[name] = sem[name] = None
            continue
        m = float(vals.mean())
        mean[name] = round_half_away(m) if name in _ROUNDED else m
        if vals.size >= 2:
            s = float(vals.std(ddof=1))
            std[name], sem[name] = s, s / math.sqrt(vals.size)
        else:
            std[name] = sem[name] = None

    no_signal = {
        "stbd": all(r.rpm_stbd_no_signal for r in present),
        "port": all(r.rpm_port_no_signal for r in present),
    }
    totals = system_totals(mean, no_signal)

    mdot = mean.get("mass_flow_rate") or 0.0
    if group.propulsion is Propulsion.PORT:
        wj = waterjet_coefficients(mdot, mean.get("rpm_port"), mean.get("thrust_port_n"), geometry)
    elif group.propulsion is Propulsion.STBD:
        wj = waterjet_coefficients(mdot, mean.get("rpm_stbd"), mean.get("thrust_stbd_n"), geometry)
    else:
        wj = waterjet_coefficients(mdot, None, None, geometry)

    return AveragedRecord(
        propulsion=group.propulsion,
        setpoint_rpm=group.setpoint_rpm,
        run_ids=tuple(r.run_id for r in present),
        missing_run_ids=tuple(missing),
        mean=mean,
        std=std if statistics else None,
        sem=sem if statistics else None,
        no_signal=no_signal,
        totals=totals,
        waterjet=wj,
    )


def average_groups(table: ResultsTable, groups: Iterable[RunGroup], statistics: bool = False,
                   geometry: WaterjetGeometry | None = None) -> list[AveragedRecord]:
    return [average_group(table, g, statistics, geometry) for g in groups]


def records_frame(records: Sequence[AveragedRecord]) -> pd.DataFrame:
    return pd.DataFrame([r.to_row() for r in records])


@dataclass(frozen=True)
class RateCurve:
    coeffs: np.ndarray      # highest power first, as np.polyfit
    r2: float
    order: int
    n: int

    def __call__(self, x):
        return np.polyval(self.coeffs, np.asarray(x, dtype=float))


def fit_rate_curve(records: Sequence[AveragedRecord], y_field: str = "mass_flow_rate",
                   x_field: str = "rpm", order: int = 4) -> RateCurve:
    """Polynomial fit of an averaged quantity against shaft speed.

    ``x_field="rpm"`` uses the measured speed of the driving shaft(s) of
    each record; any other name is read from the averaged means.
    R² = 1 - SSE/SST (0 when SST is zero).
    """
    xs, ys = [], []
    for rec in records:
        x = rec.active_rpm if x_field == "rpm" else rec.mean.get(x_field)
        y = rec.mean.get(y_field)
        if x is None or y is None:
            continue
        xs.append(float(x))
        ys.append(float(y))
    x = np.asarray(xs)
    y = np.asarray(ys)
    if order < 1:
        raise ConfigurationError(f"Polynomial order must be >= 1, got {order}")
    if x.size <= order:
        raise ConfigurationError(f"Order-{order} fit needs more than {order} points, got {x.size}")
    coeffs = np.polyfit(x, y, order)
    resid = y - np.polyval(coeffs, x)
    sse = float(np.dot(resid, resid))
    sst = float(np.sum((y - y.mean()) ** 2))
    r2 = 1.0 - sse / sst if sst > 0 else 0.0
    return RateCurve(coeffs=coeffs, r2=r2, order=int(order), n=int(x.size))
