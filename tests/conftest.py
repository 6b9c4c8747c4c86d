from __future__ import annotations

"""Pytest configuration.

This file is imported during *collection*, so it's the right place to set
process-wide environment variables needed for stable imports.
"""

import os
import tempfile

import numpy as np
import pytest

# Force a non-interactive backend in test environments.
os.environ.setdefault("MPLBACKEND", "Agg")

# Isolate matplotlib cache to avoid flaky font-cache locking (stale locks in
# ~/.cache/matplotlib can break collection).
os.environ.setdefault("MPLCONFIGDIR", tempfile.mkdtemp(prefix="mplconfig-"))

from gnss_raim.meas.pseudorange import SyntheticPseudorangeSource  # noqa: E402
from gnss_raim.models import SatelliteSystem  # noqa: E402
from gnss_raim.sat.simple_gnss import GALILEO_CONFIG, SimpleConstellationConfig, SimpleGnssEphemeris  # noqa: E402
from gnss_raim.sat.visibility import visible_sats  # noqa: E402
from gnss_raim.utils.wgs84 import lla_to_ecef  # noqa: E402

T0 = 345_600.0
GPS_CLOCK_M = 1_000.0
GAL_CLOCK_M = 1_500.0


@pytest.fixture
def receiver_ecef() -> np.ndarray:
    return lla_to_ecef(37.4275, -122.1697, 30.0)


@pytest.fixture
def gps_ephemeris() -> SimpleGnssEphemeris:
    return SimpleGnssEphemeris(seed=7)


@pytest.fixture
def multi_ephemeris() -> SimpleGnssEphemeris:
    return SimpleGnssEphemeris([SimpleConstellationConfig(), GALILEO_CONFIG], seed=7)


@pytest.fixture
def epoch_factory(receiver_ecef):
    """Return ``make(ephemeris, ...) -> (t, sat_ids, pseudoranges)`` for the test receiver."""

    def make(
        ephemeris,
        *,
        t: float = T0,
        system: SatelliteSystem | None = None,
        n_sats: int | None = None,
        faults=(),
        trop_model=None,
        noise_sigma_m: float = 0.0,
        seed: int = 0,
    ):
        sats = visible_sats(ephemeris, receiver_ecef, t, ephemeris.sat_ids, elevation_mask_deg=5.0)
        if system is not None:
            sats = [sat for sat in sats if sat.system is system]
        if n_sats is not None:
            assert len(sats) >= n_sats
            sats = sats[:n_sats]
        source = SyntheticPseudorangeSource(
            ephemeris=ephemeris,
            receiver_ecef_m=receiver_ecef,
            clock_bias_m={SatelliteSystem.GPS: GPS_CLOCK_M, SatelliteSystem.GALILEO: GAL_CLOCK_M},
            trop_model=trop_model,
            noise_sigma_m=noise_sigma_m,
            faults=faults,
            rng=np.random.default_rng(seed),
        )
        return t, sats, source.get_pseudoranges(t, sats)

    return make
