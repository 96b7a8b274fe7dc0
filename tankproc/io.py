
from __future__ import annotations
import json, re
from pathlib import Path
import numpy as np
import pandas as pd
from .run import CalibrationRecord, ChannelRole, ConfigurationError, Run, WindowPolicy, N_CHANNELS

TIME_COLS = ["Time", "time", "Time_s", "t"]
# Static pressure ports were not fitted on every campaign.
OPTIONAL_ROLES = (ChannelRole.STATIC_STBD, ChannelRole.STATIC_PORT)

# Matches R07, Run_12, run-3, R07_something.  Avoids matching inside words.
_RUN_PAT = re.compile(r"(?i)(?<![0-9A-Za-z])R(?:UN)?[ _-]*0*(\d+)(?![0-9])")


def run_id_from_stem(stem: str) -> int:
    m = _RUN_PAT.search(stem)
    if not m:
        raise ValueError(f"Cannot parse run number from {stem!r}")
    return int(m.group(1))


def _channel_column(df: pd.DataFrame, role: ChannelRole) -> str | None:
    low = {str(c).strip().lower(): c for c in df.columns}
    for key in (role.name.lower(), f"ch_{int(role)}", f"ch{int(role)}"):
        if key in low:
            return low[key]
    return None


def run_from_frame(df: pd.DataFrame, run_id: int, calibration: CalibrationRecord,
                   window: WindowPolicy | None = None, sampling_hz: float | None = None) -> Run:
    """Build a :class:`Run` from a frame with a time column and one column per channel.

    Channel columns are named after the role (``wave_probe``, ``kp_stbd``,
    ...) or ``CH_<index>``. Without a time column, ``sampling_hz`` gives
    ``t = (sample + 1) / sampling_hz``.
    """
    n = len(df)
    tcol = next((c for c in TIME_COLS if c in df.columns), None)
    if tcol is not None:
        t = pd.to_numeric(df[tcol], errors="coerce").to_numpy(float)
    elif sampling_hz and sampling_hz > 0:
        t = (np.arange(n) + 1) / float(sampling_hz)
    else:
        raise ConfigurationError(f"Run {run_id}: no time column and no sampling rate")

    channels = np.zeros((N_CHANNELS, n), dtype=float)
    for role in ChannelRole:
        col = _channel_column(df, role)
        if col is None:
            if role in OPTIONAL_ROLES:
                continue
            raise ConfigurationError(f"Run {run_id}: missing channel column {role.name.lower()}")
        channels[int(role)] = pd.to_numeric(df[col], errors="coerce").to_numpy(float)

    kw = {"window": window} if window is not None else {}
    return Run(run_id=run_id, time=t, channels=channels, calibration=calibration, **kw)


def load_calibration(path: Path | str) -> CalibrationRecord:
    """Read a flat zero/factor array from JSON (list or ``{"values": [...]}``) or CSV."""
    path = Path(path)
    if path.suffix.lower() == ".json":
        data = json.loads(path.read_text())
        if isinstance(data, dict):
            data = data.get("values", [])
        return CalibrationRecord.from_flat(data)
    df = pd.read_csv(path, header=None)
    vals = pd.to_numeric(pd.Series(df.to_numpy().ravel()), errors="coerce").dropna()
    return CalibrationRecord.from_flat(vals.tolist())


def load_run_csv(path: Path | str, calibration: CalibrationRecord, window: WindowPolicy | None = None,
                 run_id: int | None = None, sampling_hz: float | None = None) -> Run:
    path = Path(path)
    rid = run_id if run_id is not None else run_id_from_stem(path.stem)
    return run_from_frame(pd.read_csv(path), rid, calibration, window, sampling_hz)


def discover_runs(run_dir: Path | str, file_glob: str = "R*.csv") -> list[tuple[int, Path, Path | None]]:
    """List ``(run_id, csv_path, calibration_path)`` in ``run_dir`` sorted by run id.

    Each run uses ``<stem>_calib.json`` when present, else a shared
    ``calibration.json`` in the same folder, else None.
    """
    run_dir = Path(run_dir)
    shared = run_dir / "calibration.json"
    out = []
    for p in sorted(run_dir.glob(file_glob)):
        if p.stem.lower().endswith("_calib"):
            continue
        try:
            rid = run_id_from_stem(p.stem)
        except ValueError:
            continue  # not a run file
        own = p.with_name(f"{p.stem}_calib.json")
        cal = own if own.exists() else (shared if shared.exists() else None)
        out.append((rid, p, cal))
    out.sort(key=lambda r: r[0])
    return out


def load_groups(path: Path | str) -> list[dict]:
    """Group definitions from JSON: a list, or ``{"groups": [...]}``."""
    data = json.loads(Path(path).read_text())
    if isinstance(data, dict):
        data = data.get("groups", [])
    return list(data)
