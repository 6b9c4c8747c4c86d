"""Synthetic pseudorange source consistent with the solver's measurement model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

import numpy as np

from gnss_raim.models import EphemerisService, NavValidity, SatelliteSystem, SatId, SvHealth, TropModel
from gnss_raim.receiver.solver import trop_correction
from gnss_raim.utils.wgs84 import LIGHT_SPEED_MPS, rotate_for_transit

FIXED_POINT_ITERATIONS = 8


@dataclass(frozen=True)
class RangeFault:
    """Constant bias added to one satellite's pseudorange while ``start_t <= t < end_t``."""

    sat: SatId
    bias_m: float
    start_t: float = float("-inf")
    end_t: float = float("inf")

    def active(self, t: float) -> bool:
        return self.start_t <= t < self.end_t


def geometric_range_m(receiver_ecef_m: np.ndarray, sv_ecef_m: np.ndarray) -> float:
    """Compute geometric range between receiver and satellite."""

    return float(np.linalg.norm(np.asarray(sv_ecef_m) - np.asarray(receiver_ecef_m)))


@dataclass
class SyntheticPseudorangeSource:
    """Generate pseudoranges for a static receiver.

    Noiseless ranges satisfy the solver model exactly: the transmit time is
    found the way measurement preparation finds it (``t - PR/c`` then minus
    satellite clock and relativity), the satellite is rotated by the Earth
    turn during the flight, and the troposphere is evaluated at the rotated
    position. Per-system receiver clock biases are in meters.
    """

    ephemeris: EphemerisService
    receiver_ecef_m: np.ndarray
    clock_bias_m: Mapping[SatelliteSystem, float] = field(default_factory=dict)
    trop_model: TropModel | None = None
    noise_sigma_m: float = 0.0
    faults: Sequence[RangeFault] = ()
    rng: np.random.Generator = field(default_factory=np.random.default_rng)

    def __post_init__(self) -> None:
        self.receiver_ecef_m = np.asarray(self.receiver_ecef_m, dtype=float)

    def _xvt(self, sat: SatId, t: float):
        return self.ephemeris.get_xvt(sat, t, health=SvHealth.ANY, validity=NavValidity.ANY)

    def true_pseudorange(self, sat: SatId, t: float) -> float:
        """Noiseless, fault-free pseudorange received at ``t``."""

        rx = self.receiver_ecef_m
        bias = float(self.clock_bias_m.get(sat.system, 0.0))
        pr = 0.075 * LIGHT_SPEED_MPS
        for _ in range(FIXED_POINT_ITERATIONS):
            tx = t - pr / LIGHT_SPEED_MPS
            first = self._xvt(sat, tx)
            tx -= first.clk_bias_s + first.rel_corr_s
            xvt = self._xvt(sat, tx)
            sv = xvt.pos_ecef_m
            sv_rot = rotate_for_transit(sv, geometric_range_m(rx, sv) / LIGHT_SPEED_MPS)
            delay = 0.0
            if self.trop_model is not None:
                delay, _ = trop_correction(self.trop_model, rx, sv_rot, t)
            pr = (
                geometric_range_m(rx, sv_rot)
                + delay
                + bias
                - LIGHT_SPEED_MPS * (xvt.clk_bias_s + xvt.rel_corr_s)
            )
        return float(pr)

    def get_pseudoranges(self, t: float, sat_ids: Sequence[SatId]) -> np.ndarray:
        """Pseudoranges for ``sat_ids`` with noise and any active faults."""

        ranges = np.array([self.true_pseudorange(sat, t) for sat in sat_ids], dtype=float)
        if self.noise_sigma_m > 0.0:
            ranges += self.rng.normal(0.0, self.noise_sigma_m, size=ranges.size)
        for fault in self.faults:
            if not fault.active(t):
                continue
            for i, sat in enumerate(sat_ids):
                if sat == fault.sat:
                    ranges[i] += fault.bias_m
        return ranges
