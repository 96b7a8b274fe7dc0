import numpy as np
import pytest

from tankproc.run import CalibrationRecord, ChannelRole, Run, WindowPolicy, N_CHANNELS


def unit_calibration(**factors) -> CalibrationRecord:
    """Zero offsets of 0 and factors of 1, except those given by role name."""
    flat = [0.0, 1.0]
    for role in ChannelRole:
        flat += [0.0, float(factors.get(role.name.lower(), 1.0))]
    return CalibrationRecord.from_flat(flat)


def pulse_train(t, rpm):
    """Once-per-rev shaft signal: 2.5 V +/- 2 V sine, flat when rpm is 0."""
    if not rpm:
        return np.full_like(t, 2.5)
    return 2.5 + 2.0 * np.sin(2 * np.pi * (rpm / 60.0) * t)


@pytest.fixture
def make_run():
    def _make(run_id=1, seconds=30.0, fs=800.0, mass_slope=2.5, mass_intercept=10.0,
              rpm_stbd=1000, rpm_port=1000, thrust_g=(500.0, -480.0), torque_nm=(0.5, -0.4),
              kp_v=(1.2, 1.1), window=(8000, 8000), calibration=None, factors=None):
        n = int(round(seconds * fs))
        t = (np.arange(n) + 1) / fs
        ch = np.zeros((N_CHANNELS, n))
        ch[ChannelRole.WAVE_PROBE] = mass_slope * t + mass_intercept
        ch[ChannelRole.KP_STBD] = kp_v[0]
        ch[ChannelRole.KP_PORT] = kp_v[1]
        ch[ChannelRole.RPM_STBD] = pulse_train(t, rpm_stbd)
        ch[ChannelRole.RPM_PORT] = pulse_train(t, rpm_port)
        ch[ChannelRole.THRUST_STBD] = thrust_g[0]
        ch[ChannelRole.THRUST_PORT] = thrust_g[1]
        ch[ChannelRole.TORQUE_STBD] = torque_nm[0]
        ch[ChannelRole.TORQUE_PORT] = torque_nm[1]
        return Run(
            run_id=run_id,
            time=t,
            channels=ch,
            calibration=calibration or unit_calibration(**(factors or {})),
            window=WindowPolicy(*window),
        )
    return _make
