"""Core data models and interfaces for pseudorange positioning with RAIM."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum

import numpy as np

from gnss_raim.utils.wgs84 import LIGHT_SPEED_MPS


class SatelliteSystem(Enum):
    """GNSS constellations, valued by their RINEX system letter."""

    GPS = "G"
    GLONASS = "R"
    GALILEO = "E"
    BEIDOU = "C"
    QZSS = "J"
    SBAS = "S"
    NAVIC = "I"

    @property
    def label(self) -> str:
        """Three-letter label used in clock records."""

        return _SYSTEM_LABELS[self]

    @classmethod
    def from_code(cls, code: str | SatelliteSystem) -> SatelliteSystem:
        """Accept a system letter ("G"), enum name ("GPS") or three-letter label ("GAL")."""

        if isinstance(code, SatelliteSystem):
            return code
        text = str(code).strip().upper()
        for system in cls:
            if text in (system.value, system.name, system.label):
                return system
        raise ValueError(f"Unknown satellite system: {code!r}")


_SYSTEM_LABELS = {
    SatelliteSystem.GPS: "GPS",
    SatelliteSystem.GLONASS: "GLO",
    SatelliteSystem.GALILEO: "GAL",
    SatelliteSystem.BEIDOU: "BDS",
    SatelliteSystem.QZSS: "QZS",
    SatelliteSystem.SBAS: "SBS",
    SatelliteSystem.NAVIC: "IRN",
}


@dataclass(frozen=True)
class SatId:
    """Satellite identity: constellation plus PRN/slot number."""

    system: SatelliteSystem
    prn: int

    def __str__(self) -> str:
        return f"{self.system.value}{self.prn:02d}"

    @classmethod
    def from_string(cls, text: str) -> SatId:
        """Parse a RINEX satellite id such as ``G05``; a bare number means GPS."""

        text = text.strip()
        if not text:
            raise ValueError("Empty satellite id")
        if text[0].isdigit():
            return cls(SatelliteSystem.GPS, int(text))
        return cls(SatelliteSystem.from_code(text[0]), int(text[1:]))


class SatStatus(Enum):
    """Per-satellite inclusion state for one epoch."""

    INCLUDED = "included"
    EXCLUDED_USER = "excluded_user"
    EXCLUDED_CONSTELLATION = "excluded_constellation"
    EXCLUDED_NO_EPHEMERIS = "excluded_no_ephemeris"
    EXCLUDED_RAIM = "excluded_raim"

    @property
    def included(self) -> bool:
        return self is SatStatus.INCLUDED


class ResultCode(IntEnum):
    """Return codes of the solver and the RAIM search."""

    DEGRADED = 1
    OK = 0
    NOT_CONVERGED = -1
    SINGULAR = -2
    NOT_ENOUGH_SATS = -3
    NO_EPHEMERIS = -4

    @property
    def description(self) -> str:
        return _CODE_DESCRIPTIONS[self]


_CODE_DESCRIPTIONS = {
    ResultCode.DEGRADED: "ok but perhaps degraded",
    ResultCode.OK: "ok",
    ResultCode.NOT_CONVERGED: "failed to converge",
    ResultCode.SINGULAR: "singular solution",
    ResultCode.NOT_ENOUGH_SATS: "not enough satellites",
    ResultCode.NO_EPHEMERIS: "not any ephemeris",
}


class SvHealth(Enum):
    """Health filter passed to ephemeris lookups."""

    ANY = "any"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class NavValidity(Enum):
    """Validity filter passed to ephemeris lookups."""

    ANY = "any"
    VALID_ONLY = "valid_only"
    INVALID_ONLY = "invalid_only"


class SearchOrder(Enum):
    """Which ephemeris wins when several cover the requested time."""

    USER = "user"
    NEAREST = "nearest"


@dataclass(frozen=True)
class Xvt:
    """Satellite state from an ephemeris: ECEF position/velocity, clock bias and
    relativistic correction (both seconds)."""

    pos_ecef_m: np.ndarray
    vel_ecef_mps: np.ndarray
    clk_bias_s: float
    rel_corr_s: float


@dataclass(frozen=True)
class DopMetrics:
    """Dilution of precision metrics."""

    gdop: float
    pdop: float
    tdop: float
    hdop: float = float("nan")
    vdop: float = float("nan")

    @classmethod
    def undefined(cls) -> DopMetrics:
        nan = float("nan")
        return cls(gdop=nan, pdop=nan, tdop=nan, hdop=nan, vdop=nan)


@dataclass(frozen=True)
class PreparedGeometry:
    """Geometry/range matrix for one epoch plus the per-satellite marking.

    ``svp`` has one row per input satellite: satellite ECEF X, Y, Z at
    transmit time and the corrected range (pseudorange + c * (clock bias +
    relativity)). Rows of satellites that are not INCLUDED are zero.
    """

    t: float
    sat_ids: tuple[SatId, ...]
    status: tuple[SatStatus, ...]
    svp: np.ndarray
    n_good: int
    n_no_ephemeris: int

    @property
    def count(self) -> int:
        """Number of satellites with geometry, or NO_EPHEMERIS when none had ephemeris."""

        if self.n_good == 0 and self.n_no_ephemeris > 0:
            return int(ResultCode.NO_EPHEMERIS)
        return self.n_good

    @property
    def included(self) -> np.ndarray:
        return np.array([status.included for status in self.status], dtype=bool)

    @property
    def good_indexes(self) -> tuple[int, ...]:
        return tuple(i for i, status in enumerate(self.status) if status.included)


@dataclass(frozen=True)
class SolveResult:
    """Output of one weighted least-squares solve over a fixed satellite mask."""

    code: ResultCode
    included: np.ndarray
    systems: tuple[SatelliteSystem, ...] = ()
    solution: np.ndarray = field(default_factory=lambda: np.zeros(0))
    covariance: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    partials: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    inv_meas_cov: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    residuals: np.ndarray = field(default_factory=lambda: np.zeros(0))
    slopes: np.ndarray = field(default_factory=lambda: np.zeros(0))
    max_slope: float = 0.0
    rms_residual: float = float("nan")
    prefit_residuals: np.ndarray | None = None
    n_iterations: int = 0
    convergence: float = float("nan")
    trop_flag: bool = False

    @property
    def ok(self) -> bool:
        return self.code == ResultCode.OK

    @property
    def nsvs(self) -> int:
        return int(np.count_nonzero(self.included))

    @property
    def used_indexes(self) -> np.ndarray:
        return np.flatnonzero(self.included)


@dataclass(frozen=True)
class EpochResult:
    """Outcome of a RAIM solution for one epoch."""

    code: ResultCode
    valid: bool
    t: float
    sat_ids: tuple[SatId, ...]
    status: tuple[SatStatus, ...]
    systems: tuple[SatelliteSystem, ...] = ()
    solution: np.ndarray = field(default_factory=lambda: np.full(3, np.nan))
    covariance: np.ndarray = field(default_factory=lambda: np.full((3, 3), np.nan))
    partials: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    inv_meas_cov: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    residuals: np.ndarray = field(default_factory=lambda: np.zeros(0))
    slopes: np.ndarray = field(default_factory=lambda: np.zeros(0))
    rms_residual: float = float("nan")
    max_slope: float = float("nan")
    dop: DopMetrics = field(default_factory=DopMetrics.undefined)
    n_iterations: int = 0
    convergence: float = float("nan")
    nsvs: int = 0
    n_rejected: int = 0
    stage: int = 0
    trop_flag: bool = False
    slope_flag: bool = False
    rms_flag: bool = False
    prefit_residuals: np.ndarray | None = None

    @property
    def position_ecef_m(self) -> np.ndarray:
        return self.solution[:3]

    def clock_bias_m(self, system: SatelliteSystem) -> float:
        """Receiver clock bias for ``system`` in meters.

        NaN when the system has no clock column or none of its satellites was
        used; a zero-filled clock after exclusion is not an estimate.
        """

        if system not in self.systems:
            return float("nan")
        if self.sat_ids and not any(
            sat.system is system and status.included for sat, status in zip(self.sat_ids, self.status)
        ):
            return float("nan")
        return float(self.solution[3 + self.systems.index(system)])

    def clock_bias_s(self, system: SatelliteSystem) -> float:
        return self.clock_bias_m(system) / LIGHT_SPEED_MPS

    @property
    def used_sats(self) -> list[SatId]:
        return [sat for sat, status in zip(self.sat_ids, self.status) if status.included]

    @property
    def rejected_sats(self) -> list[SatId]:
        return [
            sat for sat, status in zip(self.sat_ids, self.status) if status is SatStatus.EXCLUDED_RAIM
        ]


class EphemerisService(ABC):
    """Interface for satellite ephemeris evaluation."""

    @abstractmethod
    def get_xvt(
        self,
        sat: SatId,
        t: float,
        *,
        health: SvHealth = SvHealth.HEALTHY,
        validity: NavValidity = NavValidity.VALID_ONLY,
        order: SearchOrder = SearchOrder.USER,
    ) -> Xvt:
        """Return the satellite state at GPS time ``t``; raise NoEphemerisError on failure."""


class TropModel(ABC):
    """Interface for tropospheric delay models."""

    height_limit_m: float = float("inf")

    @abstractmethod
    def correction(self, rx_ecef_m: np.ndarray, sv_ecef_m: np.ndarray, t: float) -> float:
        """Return the slant tropospheric delay in meters."""
