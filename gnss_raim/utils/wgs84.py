"""WGS-84 / GPS ellipsoid geometry used by the pseudorange solver."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class GpsEllipsoid:
    """WGS-84 shape with the GPS ICD values of c and the Earth rotation rate."""

    a: float = 6_378_137.0
    f: float = 1.0 / 298.257223563
    c: float = 299_792_458.0
    ang_velocity: float = 7.2921151467e-5

    @property
    def b(self) -> float:
        return self.a * (1.0 - self.f)

    @property
    def e2(self) -> float:
        return self.f * (2.0 - self.f)

    @property
    def ep2(self) -> float:
        b = self.b
        return (self.a**2 - b**2) / b**2


ELLIPSOID = GpsEllipsoid()
LIGHT_SPEED_MPS = ELLIPSOID.c
OMEGA_EARTH = ELLIPSOID.ang_velocity


def lla_to_ecef(lat_deg: float, lon_deg: float, alt_m: float) -> np.ndarray:
    """Convert geodetic latitude/longitude (deg) and ellipsoidal height (m) to ECEF (m)."""

    lat = np.deg2rad(lat_deg)
    lon = np.deg2rad(lon_deg)
    sin_lat = np.sin(lat)
    cos_lat = np.cos(lat)

    n = ELLIPSOID.a / np.sqrt(1.0 - ELLIPSOID.e2 * sin_lat**2)
    return np.array(
        [
            (n + alt_m) * cos_lat * np.cos(lon),
            (n + alt_m) * cos_lat * np.sin(lon),
            (n * (1.0 - ELLIPSOID.e2) + alt_m) * sin_lat,
        ],
        dtype=float,
    )


def ecef_to_lla(x_m: float, y_m: float, z_m: float) -> tuple[float, float, float]:
    """Convert ECEF to geodetic (lat_deg, lon_deg, height_m).

    Bowring's closed form gives the starting latitude; a few fixed-point
    passes tighten it. The Earth's center maps to latitude 90 and a height
    of minus the semi-minor axis, which callers treat as unreasonable.
    """

    lon = float(np.arctan2(y_m, x_m))
    p = float(np.hypot(x_m, y_m))

    if p == 0.0:
        lat = np.pi / 2.0 if z_m >= 0.0 else -np.pi / 2.0
        return float(np.rad2deg(lat)), float(np.rad2deg(lon)), float(abs(z_m) - ELLIPSOID.b)

    theta = np.arctan2(z_m * ELLIPSOID.a, p * ELLIPSOID.b)
    lat = np.arctan2(
        z_m + ELLIPSOID.ep2 * ELLIPSOID.b * np.sin(theta) ** 3,
        p - ELLIPSOID.e2 * ELLIPSOID.a * np.cos(theta) ** 3,
    )
    for _ in range(5):
        n = ELLIPSOID.a / np.sqrt(1.0 - ELLIPSOID.e2 * np.sin(lat) ** 2)
        height = p / np.cos(lat) - n
        lat_next = np.arctan2(z_m, p * (1.0 - ELLIPSOID.e2 * n / (n + height)))
        if abs(lat_next - lat) < 1e-12:
            lat = lat_next
            break
        lat = lat_next

    n = ELLIPSOID.a / np.sqrt(1.0 - ELLIPSOID.e2 * np.sin(lat) ** 2)
    height = p / np.cos(lat) - n
    return float(np.rad2deg(lat)), float(np.rad2deg(lon)), float(height)


def ecef_to_enu_matrix(lat_deg: float, lon_deg: float) -> np.ndarray:
    """Rotation taking ECEF deltas into local east/north/up."""

    lat = np.deg2rad(lat_deg)
    lon = np.deg2rad(lon_deg)
    sin_lat, cos_lat = np.sin(lat), np.cos(lat)
    sin_lon, cos_lon = np.sin(lon), np.cos(lon)
    return np.array(
        [
            [-sin_lon, cos_lon, 0.0],
            [-sin_lat * cos_lon, -sin_lat * sin_lon, cos_lat],
            [cos_lat * cos_lon, cos_lat * sin_lon, sin_lat],
        ],
        dtype=float,
    )


def enu_from_ecef_delta(delta_ecef_m: np.ndarray, lat_deg: float, lon_deg: float) -> np.ndarray:
    return ecef_to_enu_matrix(lat_deg, lon_deg) @ delta_ecef_m


def rotate_for_transit(sv_ecef_m: np.ndarray, transit_s: float) -> np.ndarray:
    """Rotate a transmit-time satellite position into the receive-time ECEF frame.

    The frame turns by ``OMEGA_EARTH * transit_s`` about +Z while the signal
    is in flight.
    """

    wt = OMEGA_EARTH * transit_s
    cos_wt = np.cos(wt)
    sin_wt = np.sin(wt)
    return np.array(
        [
            cos_wt * sv_ecef_m[0] + sin_wt * sv_ecef_m[1],
            -sin_wt * sv_ecef_m[0] + cos_wt * sv_ecef_m[1],
            sv_ecef_m[2],
        ],
        dtype=float,
    )
