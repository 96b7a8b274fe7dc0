from dataclasses import replace

from .calibration import WAVE_PROBE_CUSTOM_CF
from .pipeline import PipelineConfig

# Campaign configurations. Runs 5-8 of both flow-rate campaigns were only
# 20 s long and use the 2 s window. The first campaign replaced the logged
# wave-probe factor; the redux campaign uses the logged one.
PRESETS: dict[str, PipelineConfig] = {
    "default": PipelineConfig(),
    "flowrate": PipelineConfig(
        window_samples=8000,
        short_runs=(5, 6, 7, 8),
        wave_probe_cf=WAVE_PROBE_CUSTOM_CF,
    ),
    "flowrate-redux": PipelineConfig(
        window_samples=4000,
        short_runs=(5, 6, 7, 8),
    ),
}


def get_preset(name: str) -> PipelineConfig:
    """Return a copy of the named preset."""
    try:
        return replace(PRESETS[name])
    except KeyError:
        raise KeyError(f"Unknown preset {name!r}; choose from {sorted(PRESETS)}") from None
