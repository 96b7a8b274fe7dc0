from __future__ import annotations
from dataclasses import dataclass, asdict, fields
import math
from typing import Iterator
import pandas as pd


@dataclass(frozen=True)
class RunResult:
    """Reduced values of one run. Forces in N, torque in N·m, power in W,
    mass flow in kg/s, Kiel probe in raw volts."""
    run_id: int
    sample_rate_hz: int
    n_samples: int
    record_time_s: int
    mass_flow_rate: float
    mass_flow_rate_interval: float | None
    mass_flow_rate_overall: float
    flow_discrepancy_pct: float | None
    flow_insufficient_data: bool
    flow_review: bool
    fit_slope: float
    fit_intercept: float
    fit_slope_se: float
    fit_intercept_se: float
    fit_r2: float
    kp_stbd_v: float
    kp_port_v: float
    thrust_stbd_n: float
    thrust_port_n: float
    torque_stbd_nm: float
    torque_port_nm: float
    rpm_stbd: int
    rpm_port: int
    rpm_stbd_no_signal: bool
    rpm_port_no_signal: bool
    power_stbd_w: float
    power_port_w: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "RunResult":
        kw = {}
        for f in fields(cls):
            v = d.get(f.name)
            kind = str(f.type)
            if _missing(v):
                v = None
            elif kind == "bool":
                v = _as_bool(v)
            elif kind == "int":
                v = int(round(float(v)))
            elif kind.startswith("float"):
                v = float(v)
            kw[f.name] = v
        return cls(**kw)


@dataclass(frozen=True)
class AbsentRun:
    """Placeholder for a run that produced no result."""
    run_id: int
    reason: str = ""


def _missing(v) -> bool:
    return v is None or (isinstance(v, float) and math.isnan(v))


def _as_bool(v) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("true", "1", "yes")
    return bool(v)


class ResultsTable:
    """Run results keyed by run id.

    Every processed run id maps either to a :class:`RunResult` or to an
    :class:`AbsentRun`. Re-adding a run id replaces its entry.
    """

    def __init__(self):
        self._rows: dict[int, RunResult | AbsentRun] = {}

    def add(self, result: RunResult) -> None:
        self._rows[int(result.run_id)] = result

    def mark_absent(self, run_id: int, reason: str = "") -> None:
        self._rows[int(run_id)] = AbsentRun(int(run_id), reason)

    def get(self, run_id: int) -> RunResult | AbsentRun | None:
        return self._rows.get(int(run_id))

    def is_present(self, run_id: int) -> bool:
        return isinstance(self._rows.get(int(run_id)), RunResult)

    def present(self) -> list[RunResult]:
        return [r for _, r in sorted(self._rows.items()) if isinstance(r, RunResult)]

    def absent(self) -> list[AbsentRun]:
        return [r for _, r in sorted(self._rows.items()) if isinstance(r, AbsentRun)]

    def run_ids(self) -> list[int]:
        return sorted(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, run_id) -> bool:
        return int(run_id) in self._rows

    def __iter__(self) -> Iterator[RunResult | AbsentRun]:
        return iter(r for _, r in sorted(self._rows.items()))

    def to_frame(self) -> pd.DataFrame:
        """One row per run id; absent runs keep their id and reason, values empty."""
        cols = [f.name for f in fields(RunResult)]
        rows = []
        for r in self:
            if isinstance(r, RunResult):
                row = r.to_dict()
                row.update(status="ok", reason="")
            else:
                row = {c: None for c in cols}
                row.update(run_id=r.run_id, status="absent", reason=r.reason)
            rows.append(row)
        return pd.DataFrame(rows, columns=cols + ["status", "reason"])

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "ResultsTable":
        table = cls()
        for rec in df.to_dict(orient="records"):
            status = str(rec.get("status", "ok") or "ok").strip().lower()
            if status == "absent":
                reason = rec.get("reason")
                table.mark_absent(int(rec["run_id"]), "" if _missing(reason) else str(reason))
            else:
                table.add(RunResult.from_dict(rec))
        return table
