"""Tropospheric delay models pluggable into the pseudorange solver."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from gnss_raim.errors import ConfigurationError
from gnss_raim.models import TropModel
from gnss_raim.utils.angles import elev_az_from_rx_sv
from gnss_raim.utils.wgs84 import ecef_to_lla


def _water_vapor_pressure_hpa(temp_k: float, rel_humidity: float) -> float:
    temp_c = temp_k - 273.15
    sat_pressure = 6.11 * np.exp((17.15 * temp_c) / (234.7 + temp_c))
    return float(rel_humidity * sat_pressure)


def standard_atmosphere(
    alt_m: float,
    pressure_hpa: float = 1013.25,
    temp_k: float = 288.15,
    rel_humidity: float = 0.5,
) -> tuple[float, float, float]:
    """Scale sea-level meteorology to ``alt_m``: (pressure_hpa, temp_k, rel_humidity)."""

    alt_m = max(alt_m, 0.0)
    pressure = pressure_hpa * (1.0 - 2.2557e-5 * alt_m) ** 5.2568
    temp = temp_k - 6.5e-3 * alt_m
    humidity = rel_humidity * np.exp(-6.396e-4 * alt_m)
    return float(pressure), float(temp), float(humidity)


def saastamoinen_delay_m(
    elev_deg: float,
    lat_deg: float,
    alt_m: float,
    pressure_hpa: float = 1013.25,
    temp_k: float = 293.15,
    rel_humidity: float = 0.5,
) -> float:
    """Return the slant tropospheric delay in meters for local meteorology."""

    elev_rad = np.deg2rad(max(elev_deg, 0.1))
    lat_rad = np.deg2rad(lat_deg)
    pressure_hpa = max(0.0, pressure_hpa)
    temp_k = max(200.0, temp_k)
    rel_humidity = np.clip(rel_humidity, 0.0, 1.0)

    e_hpa = _water_vapor_pressure_hpa(temp_k, rel_humidity)
    hydrostatic = 0.0022768 * pressure_hpa / (
        1.0 - 0.00266 * np.cos(2.0 * lat_rad) - 0.00028 * alt_m / 1000.0
    )
    wet = 0.002277 * (1255.0 / temp_k + 0.05) * e_hpa
    mapping = 1.0 / np.sin(elev_rad)
    return float(max((hydrostatic + wet) * mapping, 0.0))


class ZeroTropModel(TropModel):
    """Model that applies no tropospheric delay."""

    def correction(self, rx_ecef_m: np.ndarray, sv_ecef_m: np.ndarray, t: float) -> float:
        return 0.0


@dataclass
class SaastamoinenTropModel(TropModel):
    """Saastamoinen delay with sea-level meteorology scaled by a standard atmosphere.

    The pressure profile reaches zero near 44 km, which bounds the heights the
    model accepts.
    """

    pressure_hpa: float = 1013.25
    temp_k: float = 288.15
    rel_humidity: float = 0.5
    height_limit_m: float = 44_000.0

    def correction(self, rx_ecef_m: np.ndarray, sv_ecef_m: np.ndarray, t: float) -> float:
        lat_deg, _, alt_m = ecef_to_lla(*rx_ecef_m)
        elev_deg, _ = elev_az_from_rx_sv(np.asarray(rx_ecef_m, dtype=float), np.asarray(sv_ecef_m, dtype=float))
        pressure, temp, humidity = standard_atmosphere(
            alt_m,
            pressure_hpa=self.pressure_hpa,
            temp_k=self.temp_k,
            rel_humidity=self.rel_humidity,
        )
        return saastamoinen_delay_m(
            elev_deg,
            lat_deg,
            alt_m,
            pressure_hpa=pressure,
            temp_k=temp,
            rel_humidity=humidity,
        )


def build_trop_model(name: str | None) -> TropModel:
    """Return a troposphere model by name ("zero"/"none" or "saastamoinen")."""

    key = (name or "zero").strip().lower()
    if key in ("zero", "none"):
        return ZeroTropModel()
    if key == "saastamoinen":
        return SaastamoinenTropModel()
    raise ConfigurationError(f"Unknown tropospheric model: {name!r}")
