from __future__ import annotations
from dataclasses import dataclass
import math

G_ACCEL = 9.806             # m/s²
POWER_CONSTANT = 9549.0     # kW = N·m · rpm / 9549
RHO_FRESH_WATER = 1000.0    # kg/m³
MODEL_SCALE = 21.6


def grams_to_newtons(grams: float) -> float:
    return grams / 1000.0 * G_ACCEL


def shaft_power_w(torque_nm: float, rpm: float) -> float:
    """Delivered shaft power in W from torque (N·m) and shaft speed (rpm)."""
    return abs(torque_nm) * rpm / POWER_CONSTANT * 1000.0


@dataclass(frozen=True)
class WaterjetGeometry:
    """Model-scale waterjet dimensions, derived from full-scale values."""
    scale: float = MODEL_SCALE
    impeller_dia_full_mm: float = 1200.0
    nozzle_dia_full_mm: float = 720.0
    rho: float = RHO_FRESH_WATER

    @property
    def impeller_dia_m(self) -> float:
        return self.impeller_dia_full_mm / self.scale / 1000.0

    @property
    def nozzle_area_m2(self) -> float:
        d = self.nozzle_dia_full_mm / self.scale / 1000.0
        return math.pi * (d / 2.0) ** 2


def waterjet_coefficients(mass_flow_kg_s: float, rpm: float | None, thrust_n: float | None,
                          geometry: WaterjetGeometry | None = None) -> dict:
    """Non-dimensional waterjet quantities for one shaft.

    Formulas
    --------
    Q   = ṁ / ρ                         volumetric flow [m³/s]
    n   = rpm / 60                      shaft speed [1/s]
    Φ   = Q / (n·D³)                    flow coefficient
    v_j = Q / A_nozzle                  jet velocity [m/s]
    T_g = ṁ·v_j                         gross thrust [N]
    K_T = T / (ρ·n²·D⁴)                 thrust coefficient

    ``rpm`` or ``thrust_n`` of None (no shaft speed, combined systems) leaves
    the coefficients that need them as None.
    """
    g = geometry or WaterjetGeometry()
    D = g.impeller_dia_m
    q = mass_flow_kg_s / g.rho
    vj = q / g.nozzle_area_m2
    out = {
        "vol_flow_m3s": q,
        "jet_velocity_ms": vj,
        "gross_thrust_n": mass_flow_kg_s * vj,
        "flow_coeff": None,
        "thrust_coeff": None,
    }
    if rpm:
        n = rpm / 60.0
        out["flow_coeff"] = q / (n * D ** 3)
        if thrust_n is not None:
            out["thrust_coeff"] = thrust_n / (g.rho * n ** 2 * D ** 4)
    return out
