"""Simplified multi-constellation ephemeris service with circular orbits."""

from __future__ import annotations

from dataclasses import dataclass
from math import ceil
from typing import Iterable, Sequence

import numpy as np

from gnss_raim.errors import NoEphemerisError
from gnss_raim.models import (
    EphemerisService,
    NavValidity,
    SatelliteSystem,
    SatId,
    SearchOrder,
    SvHealth,
    Xvt,
)
from gnss_raim.utils.wgs84 import LIGHT_SPEED_MPS, OMEGA_EARTH

MU_EARTH = 3.986004418e14


@dataclass(frozen=True)
class SimpleConstellationConfig:
    """Configuration for one simplified constellation."""

    system: SatelliteSystem = SatelliteSystem.GPS
    num_sats: int = 24
    num_planes: int = 6
    radius_m: float = 26_560_000.0
    inclination_deg: float = 55.0
    clock_bias_sigma_s: float = 50e-9
    clock_drift_sigma_sps: float = 1e-10
    enable_clock: bool = True


GALILEO_CONFIG = SimpleConstellationConfig(
    system=SatelliteSystem.GALILEO,
    num_sats=24,
    num_planes=3,
    radius_m=29_600_000.0,
    inclination_deg=56.0,
)


def _rot_z(angle_rad: float) -> np.ndarray:
    cos_a = np.cos(angle_rad)
    sin_a = np.sin(angle_rad)
    return np.array([[cos_a, -sin_a, 0.0], [sin_a, cos_a, 0.0], [0.0, 0.0, 1.0]], dtype=float)


def _rot_x(angle_rad: float) -> np.ndarray:
    cos_a = np.cos(angle_rad)
    sin_a = np.sin(angle_rad)
    return np.array([[1.0, 0.0, 0.0], [0.0, cos_a, -sin_a], [0.0, sin_a, cos_a]], dtype=float)


@dataclass(frozen=True)
class _Orbit:
    raan: float
    mean_anom: float
    mean_motion: float
    radius_m: float
    plane_rotation: np.ndarray
    clk_bias_s: float
    clk_drift_sps: float


class SimpleGnssEphemeris(EphemerisService):
    """Deterministic ephemeris for one or more circular-orbit constellations.

    Satellites listed in ``unhealthy`` fail healthy-only lookups, satellites
    in ``missing`` have no ephemeris at all, and ``valid_window`` bounds the
    times a valid-only lookup accepts.
    """

    def __init__(
        self,
        configs: Sequence[SimpleConstellationConfig] | None = None,
        *,
        seed: int | None = 0,
        unhealthy: Iterable[SatId] = (),
        missing: Iterable[SatId] = (),
        valid_window: tuple[float, float] | None = None,
    ) -> None:
        self.configs = tuple(configs) if configs else (SimpleConstellationConfig(),)
        self.unhealthy: set[SatId] = set(unhealthy)
        self.missing: set[SatId] = set(missing)
        self.valid_window = valid_window
        self._rng = np.random.default_rng(seed)
        self._orbits: dict[SatId, _Orbit] = {}
        for config in self.configs:
            self._orbits.update(self._build_orbits(config))

    def _build_orbits(self, config: SimpleConstellationConfig) -> dict[SatId, _Orbit]:
        num_sats = config.num_sats
        num_planes = max(1, min(config.num_planes, num_sats))
        mean_motion = float(np.sqrt(MU_EARTH / config.radius_m**3))
        plane_raan = np.linspace(0.0, 2.0 * np.pi, num_planes, endpoint=False)
        plane_offsets = self._rng.uniform(0.0, 2.0 * np.pi, size=num_planes)
        sats_per_plane = ceil(num_sats / num_planes)
        inclination = _rot_x(np.deg2rad(config.inclination_deg))
        if config.enable_clock:
            clk_bias = self._rng.normal(0.0, config.clock_bias_sigma_s, size=num_sats)
            clk_drift = self._rng.normal(0.0, config.clock_drift_sigma_sps, size=num_sats)
        else:
            clk_bias = np.zeros(num_sats)
            clk_drift = np.zeros(num_sats)

        orbits: dict[SatId, _Orbit] = {}
        for idx in range(num_sats):
            plane = idx % num_planes
            raan = float(plane_raan[plane])
            orbits[SatId(config.system, idx + 1)] = _Orbit(
                raan=raan,
                mean_anom=float(2.0 * np.pi * (idx // num_planes) / sats_per_plane + plane_offsets[plane]),
                mean_motion=mean_motion,
                radius_m=config.radius_m,
                plane_rotation=_rot_z(raan) @ inclination,
                clk_bias_s=float(clk_bias[idx]),
                clk_drift_sps=float(clk_drift[idx]),
            )
        return orbits

    @property
    def sat_ids(self) -> list[SatId]:
        return list(self._orbits)

    def get_xvt(
        self,
        sat: SatId,
        t: float,
        *,
        health: SvHealth = SvHealth.HEALTHY,
        validity: NavValidity = NavValidity.VALID_ONLY,
        order: SearchOrder = SearchOrder.USER,
    ) -> Xvt:
        orbit = self._orbits.get(sat)
        if orbit is None or sat in self.missing:
            raise NoEphemerisError(f"No ephemeris for {sat} at {t:.3f}")
        if health is SvHealth.HEALTHY and sat in self.unhealthy:
            raise NoEphemerisError(f"{sat} is unhealthy at {t:.3f}")
        if health is SvHealth.UNHEALTHY and sat not in self.unhealthy:
            raise NoEphemerisError(f"{sat} is healthy at {t:.3f}")
        in_window = self.valid_window is None or self.valid_window[0] <= t <= self.valid_window[1]
        if validity is NavValidity.VALID_ONLY and not in_window:
            raise NoEphemerisError(f"Ephemeris for {sat} not valid at {t:.3f}")
        if validity is NavValidity.INVALID_ONLY and in_window:
            raise NoEphemerisError(f"Ephemeris for {sat} is valid at {t:.3f}")

        theta = orbit.mean_motion * t + orbit.mean_anom
        r_orb = orbit.radius_m * np.array([np.cos(theta), np.sin(theta), 0.0], dtype=float)
        v_orb = orbit.radius_m * orbit.mean_motion * np.array([-np.sin(theta), np.cos(theta), 0.0], dtype=float)
        rot_earth = _rot_z(-OMEGA_EARTH * t)
        r_ecef = rot_earth @ orbit.plane_rotation @ r_orb
        omega = np.array([0.0, 0.0, OMEGA_EARTH], dtype=float)
        v_ecef = rot_earth @ orbit.plane_rotation @ v_orb - np.cross(omega, r_ecef)

        clk_bias = orbit.clk_bias_s + orbit.clk_drift_sps * t
        rel_corr = -2.0 * float(np.dot(r_ecef, v_ecef)) / LIGHT_SPEED_MPS**2
        return Xvt(pos_ecef_m=r_ecef, vel_ecef_mps=v_ecef, clk_bias_s=float(clk_bias), rel_corr_s=rel_corr)
