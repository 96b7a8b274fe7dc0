import logging

import numpy as np
import pytest

from tankproc.calibration import WAVE_PROBE_CUSTOM_CF
from tankproc.pipeline import PipelineConfig, process_run, process_runs
from tankproc.presets import PRESETS, get_preset
from tankproc.results import AbsentRun, ResultsTable, RunResult
from tankproc.run import ConfigurationError, WindowPolicy
from tankproc.stats import run_statistics, window_stats


def test_process_run_fields(make_run):
    res = process_run(make_run())
    assert res.run_id == 1
    assert res.sample_rate_hz == 800
    assert res.n_samples == 24000
    assert res.record_time_s == 30
    assert np.isclose(res.mass_flow_rate, 2.5)
    assert np.isclose(res.mass_flow_rate_interval, 2.5)
    assert np.isclose(res.mass_flow_rate_overall, 2.5)
    assert np.isclose(res.flow_discrepancy_pct, 0.0, atol=1e-8)
    assert abs(res.rpm_stbd - 1000) <= 1 and abs(res.rpm_port - 1000) <= 1
    assert np.isclose(res.thrust_stbd_n, 0.5 * 9.806)
    assert np.isclose(res.thrust_port_n, 0.48 * 9.806)
    assert np.isclose(res.torque_port_nm, 0.4)
    assert np.isclose(res.kp_stbd_v, 1.2)
    assert np.isclose(res.power_stbd_w, 0.5 * res.rpm_stbd / 9549 * 1000)


def test_no_signal_shaft(make_run, caplog):
    with caplog.at_level(logging.WARNING, logger="tankproc.pipeline"):
        res = process_run(make_run(rpm_port=0))
    assert res.rpm_port == 0 and res.rpm_port_no_signal
    assert res.power_port_w == 0.0
    assert not res.rpm_stbd_no_signal
    assert "no port shaft-speed signal" in caplog.text


def test_wave_probe_override(make_run):
    res = process_run(make_run(), PipelineConfig(wave_probe_cf=2.0))
    assert np.isclose(res.mass_flow_rate, 5.0)


def test_zero_factor_run_is_absent_and_others_continue(make_run):
    bad = make_run(run_id=2, factors={"thrust_port": 0.0})
    table = process_runs([make_run(run_id=1), bad, make_run(run_id=3)])
    assert table.run_ids() == [1, 2, 3]
    assert isinstance(table.get(2), AbsentRun)
    assert "THRUST_PORT" in table.get(2).reason
    assert [r.run_id for r in table.present()] == [1, 3]


def test_short_run_window(make_run):
    cfg = PipelineConfig(short_runs=[5])
    assert cfg.window_for(5) == WindowPolicy(1600, 1600)
    assert cfg.window_for(6) == WindowPolicy(8000, 8000)
    # a 20 s run only fits the short window
    res = process_run(make_run(run_id=5, seconds=20.0, window=(1600, 1600)), cfg)
    assert np.isclose(res.mass_flow_rate, 2.5)


def test_config_validation():
    with pytest.raises(ConfigurationError):
        PipelineConfig(sample_rate_hz=0)
    with pytest.raises(ConfigurationError):
        PipelineConfig(rpm_method="fft")
    with pytest.raises(ConfigurationError, match="Unknown"):
        PipelineConfig.from_dict({"bogus": 1})


def test_presets():
    redux = get_preset("flowrate-redux")
    assert redux.window_samples == 4000
    assert 7 in redux.short_runs
    assert "default" in PRESETS
    with pytest.raises(KeyError):
        get_preset("nope")


def test_preset_copies_are_independent():
    cfg = get_preset("default")
    cfg.window_samples = 123
    assert PRESETS["default"].window_samples == 8000
    assert get_preset("default").window_samples == 8000


def test_flowrate_preset_uses_custom_wave_probe_factor(make_run):
    assert get_preset("flowrate").wave_probe_cf == WAVE_PROBE_CUSTOM_CF
    assert get_preset("flowrate-redux").wave_probe_cf is None
    res = process_run(make_run(), get_preset("flowrate"))
    assert np.isclose(res.mass_flow_rate, 2.5 * 46.001)
    res = process_run(make_run(), get_preset("flowrate-redux"))
    assert np.isclose(res.mass_flow_rate, 2.5)


def test_mean_period_method(make_run):
    res = process_run(make_run(), PipelineConfig(rpm_method="mean_period"))
    assert abs(res.rpm_stbd - 1000) <= 1


def test_results_table_frame_roundtrip(make_run):
    table = process_runs([make_run(run_id=1)])
    table.mark_absent(4, "no calibration")
    df = table.to_frame()
    assert list(df["status"]) == ["ok", "absent"]
    back = ResultsTable.from_frame(df)
    assert isinstance(back.get(1), RunResult)
    assert back.get(4) == AbsentRun(4, "no calibration")
    assert np.isclose(back.get(1).mass_flow_rate, table.get(1).mass_flow_rate)
    assert back.get(1).rpm_stbd_no_signal is False


def test_window_stats():
    ws = window_stats([1.0, 2.0, 3.0, 4.0])
    assert np.isclose(ws.mean, 2.5)
    assert np.isclose(ws.std, np.std([1, 2, 3, 4], ddof=1))
    assert np.isclose(ws.sem, ws.std / 2.0)
    assert window_stats([5.0]).n == 1 and np.isnan(window_stats([5.0]).std)


def test_run_statistics_row(make_run):
    row = run_statistics(make_run())
    assert row["run_id"] == 1
    assert np.isclose(row["thrust_port_n_mean"], 0.48 * 9.806)
    assert np.isclose(row["torque_port_nm_std"], 0.0)
    assert row["n_window"] == 8000
    assert abs(row["rpm_port"] - 1000) <= 1
