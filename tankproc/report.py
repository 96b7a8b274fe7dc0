from __future__ import annotations
import json
import math
from pathlib import Path
from typing import Sequence
import pandas as pd
from .aggregate import AveragedRecord, RateCurve, records_frame
from .results import ResultsTable


def _clean(v):
    # JSON has no NaN
    if isinstance(v, float) and math.isnan(v):
        return None
    return v


def _write_frame(outdir: Path, stem: str, df: pd.DataFrame) -> list[str]:
    outdir.mkdir(parents=True, exist_ok=True)
    csv = outdir / f"{stem}.csv"
    js = outdir / f"{stem}.json"
    df.to_csv(csv, index=False)
    rows = [{k: _clean(v) for k, v in r.items()} for r in df.to_dict(orient="records")]
    js.write_text(json.dumps(rows, indent=2, default=str))
    return [str(csv), str(js)]


def write_results_tables(outdir: Path, table: ResultsTable, stem: str = "run_results") -> list[str]:
    return _write_frame(Path(outdir), stem, table.to_frame())


def write_statistics_table(outdir: Path, rows: Sequence[dict], stem: str = "run_statistics") -> list[str]:
    return _write_frame(Path(outdir), stem, pd.DataFrame(list(rows)))


def write_averaged_tables(outdir: Path, records: Sequence[AveragedRecord],
                          curves: dict[str, RateCurve] | None = None,
                          stem: str = "averaged_results") -> list[str]:
    outdir = Path(outdir)
    files = _write_frame(outdir, stem, records_frame(records))
    if curves:
        payload = {
            name: {"order": c.order, "n": c.n, "r2": c.r2, "coeffs": [float(x) for x in c.coeffs]}
            for name, c in curves.items()
        }
        p = outdir / f"{stem}_curves.json"
        p.write_text(json.dumps(payload, indent=2))
        files.append(str(p))
    return files
