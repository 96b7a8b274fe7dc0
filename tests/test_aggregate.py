import math

import numpy as np
import pytest

from tankproc.aggregate import (
    AveragedRecord,
    Propulsion,
    RunGroup,
    average_group,
    average_groups,
    fit_rate_curve,
    records_frame,
    system_totals,
)
from tankproc.physics import WaterjetGeometry, waterjet_coefficients
from tankproc.pipeline import process_runs
from tankproc.results import ResultsTable
from tankproc.run import ConfigurationError


def test_single_run_group_is_identity(make_run):
    table = process_runs([make_run(run_id=7)])
    rec = average_group(table, RunGroup(Propulsion.STBD, 1000, [7]), statistics=True)
    res = table.get(7)
    assert rec.n_runs == 1
    assert rec.mean["mass_flow_rate"] == res.mass_flow_rate
    assert rec.mean["thrust_stbd_n"] == res.thrust_stbd_n
    assert rec.mean["rpm_stbd"] == res.rpm_stbd
    assert rec.std["mass_flow_rate"] is None


def test_identical_runs_have_zero_spread(make_run):
    table = process_runs([make_run(run_id=i) for i in (1, 2, 3, 4)])
    rec = average_group(table, RunGroup.from_range("port", 1000, 1, 4), statistics=True)
    one = table.get(1)
    assert np.isclose(rec.mean["mass_flow_rate"], one.mass_flow_rate)
    assert np.isclose(rec.mean["torque_port_nm"], one.torque_port_nm)
    assert np.isclose(rec.std["mass_flow_rate"], 0.0)
    assert np.isclose(rec.sem["thrust_port_n"], 0.0)
    assert rec.mean["n_samples"] == one.n_samples
    assert np.isclose(rec.mean["fit_r2"], one.fit_r2)
    assert np.isclose(rec.std["fit_slope_se"], 0.0)


def test_three_repeats_mean_and_std(make_run):
    runs = [make_run(run_id=i, mass_slope=s) for i, s in ((1, 2.50), (2, 2.52), (3, 2.48))]
    table = process_runs(runs)
    rec = average_group(table, RunGroup(Propulsion.PORT, 1000, (1, 2, 3)), statistics=True)
    assert np.isclose(rec.mean["mass_flow_rate"], 2.50)
    assert np.isclose(rec.std["mass_flow_rate"], 0.02)
    assert np.isclose(rec.sem["mass_flow_rate"], 0.02 / math.sqrt(3))


def test_non_contiguous_group(make_run):
    table = process_runs([make_run(run_id=12), make_run(run_id=16, mass_slope=3.0)])
    rec = average_group(table, RunGroup(Propulsion.PORT, 1000, [12, 16]))
    assert rec.run_ids == (12, 16)
    assert np.isclose(rec.mean["mass_flow_rate"], 2.75)
    assert rec.std is None


def test_no_signal_runs_are_left_out_of_rpm(make_run):
    table = process_runs([make_run(run_id=1), make_run(run_id=2, rpm_port=0)])
    rec = average_group(table, RunGroup(Propulsion.PORT, 1000, [1, 2]))
    assert rec.mean["rpm_port"] == table.get(1).rpm_port
    assert not rec.no_signal["port"]

    table = process_runs([make_run(run_id=3, rpm_stbd=0)])
    rec = average_group(table, RunGroup(Propulsion.PORT, 1000, [3]))
    assert rec.mean["rpm_stbd"] is None
    assert rec.no_signal["stbd"]


def test_absent_members_are_skipped(make_run):
    table = process_runs([make_run(run_id=1)])
    table.mark_absent(2, "bad calibration")
    rec = average_group(table, RunGroup(Propulsion.STBD, 1000, [1, 2, 3]))
    assert rec.run_ids == (1,)
    assert rec.missing_run_ids == (2, 3)

    with pytest.raises(ConfigurationError, match="no processed runs"):
        average_group(table, RunGroup(Propulsion.STBD, 1000, [2, 3]))


def test_group_definition_errors():
    with pytest.raises(ConfigurationError):
        RunGroup(Propulsion.PORT, 1000, [])
    with pytest.raises(ConfigurationError):
        RunGroup(None, 1000, [1])
    with pytest.raises(ConfigurationError):
        RunGroup(Propulsion.PORT, None, [1])
    with pytest.raises(ConfigurationError):
        RunGroup.from_range(Propulsion.PORT, 1000, 5, 4)
    with pytest.raises(ConfigurationError):
        RunGroup.from_dict({"propulsion": "port", "setpoint_rpm": 1000})


def test_propulsion_parse():
    assert Propulsion.parse(1) is Propulsion.PORT
    assert Propulsion.parse("2") is Propulsion.STBD
    assert Propulsion.parse("Combined") is Propulsion.COMBINED
    with pytest.raises(ConfigurationError):
        Propulsion.parse(4)


def test_system_totals(make_run):
    table = process_runs([make_run(run_id=1, rpm_port=0)])
    res = table.get(1)
    tot = system_totals(res)
    assert np.isclose(tot["thrust_n"], res.thrust_stbd_n + res.thrust_port_n)
    assert np.isclose(tot["torque_nm"], 0.9)
    assert tot["rpm_mean"] == res.rpm_stbd


def test_waterjet_quantities(make_run):
    table = process_runs([make_run(run_id=1)])
    rec = average_group(table, RunGroup(Propulsion.PORT, 1000, [1]))
    g = WaterjetGeometry()
    q = rec.mean["mass_flow_rate"] / 1000.0
    assert np.isclose(rec.waterjet["vol_flow_m3s"], q)
    assert np.isclose(rec.waterjet["jet_velocity_ms"], q / g.nozzle_area_m2)
    n = rec.mean["rpm_port"] / 60.0
    assert np.isclose(rec.waterjet["flow_coeff"], q / (n * g.impeller_dia_m ** 3))

    comb = average_group(table, RunGroup(Propulsion.COMBINED, 1000, [1]))
    assert comb.waterjet["flow_coeff"] is None
    assert comb.waterjet["thrust_coeff"] is None


def test_waterjet_coefficients_without_rpm():
    wj = waterjet_coefficients(2.0, 0, 5.0)
    assert wj["flow_coeff"] is None
    assert np.isclose(wj["gross_thrust_n"], 2.0 * wj["jet_velocity_ms"])


def _rec(rpm, flow):
    return AveragedRecord(
        propulsion=Propulsion.PORT,
        setpoint_rpm=rpm,
        run_ids=(1,),
        missing_run_ids=(),
        mean={"rpm_port": rpm, "mass_flow_rate": flow},
    )


def test_fit_rate_curve():
    rpms = np.array([500.0, 800.0, 1100.0, 1400.0, 1700.0, 2000.0])
    recs = [_rec(r, 1e-7 * r ** 2 + 1e-3 * r + 0.1) for r in rpms]
    curve = fit_rate_curve(recs, order=2)
    assert curve.n == 6
    assert curve.r2 > 0.999999
    assert np.isclose(curve(1250.0), 1e-7 * 1250.0 ** 2 + 1e-3 * 1250.0 + 0.1)
    with pytest.raises(ConfigurationError):
        fit_rate_curve(recs[:2], order=2)


def test_records_frame(make_run):
    table = process_runs([make_run(run_id=1), make_run(run_id=2)])
    recs = average_groups(table, [RunGroup("port", 1000, [1, 2]), RunGroup("stbd", 1000, [2])], statistics=True)
    df = records_frame(recs)
    assert list(df["propulsion"]) == ["port", "stbd"]
    assert list(df["run_ids"]) == ["1;2", "2"]
    assert "mass_flow_rate_std" in df.columns
    assert "total_thrust_n" in df.columns


def test_empty_table_group_raises():
    with pytest.raises(ConfigurationError):
        average_group(ResultsTable(), RunGroup("port", 1000, [1]))


def test_every_numeric_result_field_is_averaged(make_run):
    table = process_runs([make_run(run_id=1)])
    rec = average_group(table, RunGroup(Propulsion.PORT, 1000, [1]))
    row = records_frame([rec]).iloc[0]
    for name in ("sample_rate_hz", "record_time_s", "fit_slope_se", "fit_intercept_se", "fit_r2"):
        assert name in row.index
    assert row["record_time_s"] == 30
