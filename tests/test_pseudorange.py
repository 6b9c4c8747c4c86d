import numpy as np
import pytest

from gnss_raim.meas.pseudorange import RangeFault, SyntheticPseudorangeSource, geometric_range_m
from gnss_raim.models import SatelliteSystem
from gnss_raim.sat.visibility import visible_sats


def test_pseudorange_is_range_plus_clocks(gps_ephemeris, receiver_ecef) -> None:
    t = 1000.0
    sat = visible_sats(gps_ephemeris, receiver_ecef, t, gps_ephemeris.sat_ids)[0]
    source = SyntheticPseudorangeSource(
        gps_ephemeris, receiver_ecef, clock_bias_m={SatelliteSystem.GPS: 250.0}
    )

    pr = source.true_pseudorange(sat, t)

    xvt = gps_ephemeris.get_xvt(sat, t - pr / 299_792_458.0)
    approx = geometric_range_m(receiver_ecef, xvt.pos_ecef_m) + 250.0 - 299_792_458.0 * xvt.clk_bias_s
    assert pr == pytest.approx(approx, abs=100.0)
    assert 1.9e7 < pr < 2.7e7


def test_faults_apply_inside_their_window(gps_ephemeris, receiver_ecef) -> None:
    t = 1000.0
    sats = visible_sats(gps_ephemeris, receiver_ecef, t, gps_ephemeris.sat_ids)[:4]
    fault = RangeFault(sats[1], 40.0, start_t=500.0, end_t=1500.0)
    clean = SyntheticPseudorangeSource(gps_ephemeris, receiver_ecef)
    faulty = SyntheticPseudorangeSource(gps_ephemeris, receiver_ecef, faults=[fault])

    delta = faulty.get_pseudoranges(t, sats) - clean.get_pseudoranges(t, sats)

    assert np.allclose(delta, [0.0, 40.0, 0.0, 0.0])
    assert not fault.active(1500.0)


def test_noise_follows_the_generator(gps_ephemeris, receiver_ecef) -> None:
    t = 1000.0
    sats = visible_sats(gps_ephemeris, receiver_ecef, t, gps_ephemeris.sat_ids)
    clean = SyntheticPseudorangeSource(gps_ephemeris, receiver_ecef)
    noisy = SyntheticPseudorangeSource(
        gps_ephemeris, receiver_ecef, noise_sigma_m=3.0, rng=np.random.default_rng(1)
    )

    delta = noisy.get_pseudoranges(t, sats) - clean.get_pseudoranges(t, sats)

    assert np.allclose(delta, np.random.default_rng(1).normal(0.0, 3.0, size=len(sats)))
