from __future__ import annotations
import argparse, json, logging
from dataclasses import asdict
from pathlib import Path
import pandas as pd
from .aggregate import Propulsion, RunGroup, average_groups, fit_rate_curve
from .io import discover_runs, load_calibration, load_groups, load_run_csv
from .pipeline import PipelineConfig, process_runs
from .presets import PRESETS, get_preset
from .report import write_averaged_tables, write_results_tables, write_statistics_table
from .results import ResultsTable
from .run import ConfigurationError
from .stats import run_statistics

logger = logging.getLogger(__name__)


def build_parser():
    p = argparse.ArgumentParser(prog="tankproc", description="Towing-tank propulsion run reduction")
    p.add_argument("--log-level", default="WARNING", help="Python logging level (default WARNING)")
    sub = p.add_subparsers(dest="cmd", required=True)

    def run_inputs(sp):
        sp.add_argument("--run-dir", required=True, help="Folder of run CSVs (R<id>.csv)")
        sp.add_argument("--calib", help="Calibration JSON/CSV for every run (else per-run or shared calibration.json)")
        sp.add_argument("--file-glob", default="R*.csv", help="Run file glob (default R*.csv)")
        sp.add_argument("--preset", default="default", choices=sorted(PRESETS))
        sp.add_argument("--config", help="JSON file with PipelineConfig fields overriding the preset")
        sp.add_argument("--sampling-hz", type=float, default=None, help="Rate used when a CSV has no time column")
        sp.add_argument("--outdir", required=True)

    p1 = sub.add_parser("process", help="Reduce run CSVs into a run results table")
    run_inputs(p1)

    p2 = sub.add_parser("stats", help="Per-run window statistics (mean, std, standard error)")
    run_inputs(p2)

    p3 = sub.add_parser("average", help="Average run results over groups of repeated runs")
    p3.add_argument("--results", required=True, help="Run results CSV written by 'process'")
    p3.add_argument("--groups", required=True, help="JSON list of {propulsion, setpoint_rpm, runs | first/last}")
    p3.add_argument("--stats", action="store_true", help="Add std and standard error across runs")
    p3.add_argument("--fit-order", type=int, default=None, help="Fit mass flow rate vs rpm per configuration")
    p3.add_argument("--outdir", required=True)
    return p


def _load_config(a) -> PipelineConfig:
    base = asdict(get_preset(a.preset))
    if a.config:
        with open(a.config) as fh:
            base.update(json.load(fh))
    return PipelineConfig.from_dict(base)


def _iter_runs(a, cfg: PipelineConfig, table: ResultsTable | None = None):
    """Yield loadable runs; runs that cannot be built are marked absent in ``table``."""
    found = discover_runs(a.run_dir, a.file_glob)
    if not found:
        raise SystemExit(f"No run files matching {a.file_glob!r} in {a.run_dir}")
    try:
        shared = load_calibration(a.calib) if a.calib else None
    except ConfigurationError as exc:
        raise SystemExit(f"Invalid calibration file {a.calib}: {exc}")
    for rid, csv_path, cal_path in found:
        try:
            if shared is not None:
                cal = shared
            elif cal_path is not None:
                cal = load_calibration(cal_path)
            else:
                raise ConfigurationError(f"No calibration for run {rid}")
            run = load_run_csv(csv_path, cal, cfg.window_for(rid), run_id=rid, sampling_hz=a.sampling_hz)
        except ConfigurationError as exc:
            logger.error("Run %d not loaded: %s", rid, exc)
            if table is not None:
                table.mark_absent(rid, str(exc))
            continue
        yield run


def main(argv=None):
    ap = build_parser()
    a = ap.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(a.log_level).upper(), logging.WARNING))

    if a.cmd in ("process", "stats"):
        try:
            cfg = _load_config(a)
        except ConfigurationError as exc:
            raise SystemExit(f"Invalid configuration: {exc}")
        outdir = Path(a.outdir)

        if a.cmd == "process":
            table = ResultsTable()
            process_runs(list(_iter_runs(a, cfg, table)), cfg, table)
            files = write_results_tables(outdir, table)
            summary = {
                "n_runs": len(table),
                "n_ok": len(table.present()),
                "absent": [r.run_id for r in table.absent()],
                "review": [r.run_id for r in table.present() if r.flow_review],
                "files": files,
            }
        else:
            rows = []
            for run in _iter_runs(a, cfg):
                try:
                    rows.append(run_statistics(run, cfg))
                except ConfigurationError as exc:
                    logger.error("Run %d skipped: %s", run.run_id, exc)
            files = write_statistics_table(outdir, rows)
            summary = {"n_runs": len(rows), "files": files}
        print(json.dumps(summary, indent=2))

    elif a.cmd == "average":
        table = ResultsTable.from_frame(pd.read_csv(a.results))
        try:
            groups = [RunGroup.from_dict(g) for g in load_groups(a.groups)]
            records = average_groups(table, groups, statistics=a.stats)
            curves = {}
            if a.fit_order:
                for prop in Propulsion:
                    recs = [r for r in records if r.propulsion is prop
                            and r.active_rpm is not None and r.mean.get("mass_flow_rate") is not None]
                    if len(recs) > a.fit_order:
                        curves[prop.value] = fit_rate_curve(recs, order=a.fit_order)
                    elif recs:
                        logger.warning("No %s rate curve: %d usable groups for an order-%d fit",
                                       prop.value, len(recs), a.fit_order)
        except ConfigurationError as exc:
            raise SystemExit(f"Averaging failed: {exc}")
        files = write_averaged_tables(Path(a.outdir), records, curves)
        summary = {
            "n_groups": len(records),
            "groups": [
                {"propulsion": r.propulsion.value, "setpoint_rpm": r.setpoint_rpm,
                 "n_runs": r.n_runs, "mass_flow_rate": r.mean.get("mass_flow_rate")}
                for r in records
            ],
            "curves": {k: {"order": c.order, "r2": c.r2} for k, c in curves.items()},
            "files": files,
        }
        print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
