import numpy as np
import pytest

from tankproc.calibration import calibrate_channel, from_real_units, to_real_units
from tankproc.run import CalibrationRecord, ChannelRole, ConfigurationError, Run, WindowPolicy


def test_to_real_units_applies_zero_and_factor():
    phys, mean = to_real_units([1.0, 2.0, 3.0], zero=1.0, factor=2.0)
    assert np.allclose(phys, [0.0, 2.0, 4.0])
    assert np.isclose(mean, 2.0)


def test_inverse_recovers_raw():
    rng = np.random.default_rng(0)
    raw = rng.normal(1.5, 0.3, size=500)
    phys, _ = to_real_units(raw, zero=0.73, factor=-46.001)
    assert np.allclose(from_real_units(phys, 0.73, -46.001), raw)


def test_empty_series_mean_is_nan():
    phys, mean = to_real_units([], 0.0, 1.0)
    assert phys.size == 0
    assert np.isnan(mean)


def test_from_flat_layout():
    flat = [0.0, 1.0] + [v for i in range(11) for v in (float(i), 10.0 + i)]
    cal = CalibrationRecord.from_flat(flat)
    assert cal.for_role(ChannelRole.WAVE_PROBE).zero == 0.0
    assert cal.for_role(ChannelRole.TORQUE_PORT).factor == 20.0
    assert cal.to_flat() == flat


def test_from_flat_rejects_wrong_length():
    with pytest.raises(ConfigurationError, match="24"):
        CalibrationRecord.from_flat([1.0] * 20)


def test_zero_factor_is_configuration_error(make_run):
    flat = [0.0, 1.0] + [0.0, 1.0] * 11
    flat[2 + 2 * ChannelRole.THRUST_STBD + 1] = 0.0
    run = make_run(seconds=2.0, window=(100, 100), calibration=CalibrationRecord.from_flat(flat))
    with pytest.raises(ConfigurationError, match="THRUST_STBD"):
        calibrate_channel(run, ChannelRole.THRUST_STBD)
    # other channels remain usable
    _, mean = calibrate_channel(run, ChannelRole.TORQUE_STBD)
    assert np.isclose(mean, 0.5)


def test_factor_override(make_run):
    run = make_run(seconds=2.0, window=(100, 100))
    base, _ = calibrate_channel(run, ChannelRole.WAVE_PROBE)
    scaled, _ = calibrate_channel(run, ChannelRole.WAVE_PROBE, factor_override=46.001)
    assert np.allclose(scaled, 46.001 * base)


def test_run_rejects_bad_window_and_shapes():
    t = np.arange(100) / 800.0
    ch = np.zeros((11, 100))
    cal = CalibrationRecord.from_flat([0.0, 1.0] * 12)
    with pytest.raises(ConfigurationError):
        Run(1, t, ch, cal, WindowPolicy(60, 40))
    with pytest.raises(ConfigurationError):
        Run(1, t, ch, cal, WindowPolicy(-1, 0))
    with pytest.raises(ConfigurationError):
        Run(1, t[:-1], ch, cal, WindowPolicy(10, 10))
    with pytest.raises(ConfigurationError):
        Run(0, t, ch, cal, WindowPolicy(10, 10))
    run = Run(3, t, ch, cal, WindowPolicy(10, 20))
    assert run.window_slice == slice(10, 80)
    assert not run.time.flags.writeable
