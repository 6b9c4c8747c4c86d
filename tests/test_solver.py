import numpy as np
import pytest

from gnss_raim.errors import ConfigurationError
from gnss_raim.meas.troposphere import SaastamoinenTropModel, ZeroTropModel
from gnss_raim.models import ResultCode, SatelliteSystem, SatId
from gnss_raim.receiver.prepare import prepare_pr_solution
from gnss_raim.receiver.solver import inverse_svd, simple_pr_solution, trop_correction
from gnss_raim.utils.wgs84 import lla_to_ecef

GPS = SatelliteSystem.GPS
GAL = SatelliteSystem.GALILEO


def _solve(geometry, trop_model=None, *, allowed_gnss=(GPS,), **kwargs):
    return simple_pr_solution(
        geometry.t,
        geometry.sat_ids,
        geometry.svp,
        geometry.included,
        trop_model or ZeroTropModel(),
        allowed_gnss=allowed_gnss,
        **kwargs,
    )


def test_warm_start_at_truth_converges_in_two_iterations(gps_ephemeris, epoch_factory, receiver_ecef) -> None:
    t, sats, ranges = epoch_factory(gps_ephemeris, system=GPS, n_sats=4)
    geometry = prepare_pr_solution(t, sats, ranges, gps_ephemeris, allowed_gnss=(GPS,))
    apriori = np.array([*receiver_ecef, 1000.0])

    result = _solve(geometry, apriori=apriori)

    assert result.code == ResultCode.OK
    assert result.n_iterations == 2
    assert np.linalg.norm(result.solution[:3] - receiver_ecef) < 1e-6
    assert result.solution[3] == pytest.approx(1000.0, abs=1e-6)
    assert result.rms_residual < 1e-5
    assert result.prefit_residuals is not None
    assert np.max(np.abs(result.prefit_residuals)) < 1e-5


def test_cold_start_with_troposphere_recovers_truth(gps_ephemeris, epoch_factory, receiver_ecef) -> None:
    trop = SaastamoinenTropModel()
    t, sats, ranges = epoch_factory(gps_ephemeris, system=GPS, trop_model=trop)
    geometry = prepare_pr_solution(t, sats, ranges, gps_ephemeris, allowed_gnss=(GPS,))

    result = _solve(geometry, trop)

    assert result.code == ResultCode.OK
    assert 2 <= result.n_iterations <= 10
    assert result.convergence < 3e-7
    assert np.linalg.norm(result.solution[:3] - receiver_ecef) < 1e-4
    assert result.solution[3] == pytest.approx(1000.0, abs=1e-4)
    assert not result.trop_flag
    assert result.prefit_residuals is None
    assert result.slopes.shape == (len(sats),)
    assert result.max_slope == pytest.approx(float(np.max(result.slopes)))


def test_converged_solution_as_seed_takes_two_iterations(gps_ephemeris, epoch_factory) -> None:
    trop = SaastamoinenTropModel()
    t, sats, ranges = epoch_factory(gps_ephemeris, system=GPS, trop_model=trop)
    geometry = prepare_pr_solution(t, sats, ranges, gps_ephemeris, allowed_gnss=(GPS,))
    cold = _solve(geometry, trop)
    assert cold.code == ResultCode.OK

    seeded = _solve(geometry, trop, apriori=cold.solution)

    assert seeded.code == ResultCode.OK
    assert seeded.n_iterations == 2
    assert np.linalg.norm(seeded.solution - cold.solution) < 1e-6
    assert seeded.rms_residual == pytest.approx(cold.rms_residual, abs=1e-6)


def test_not_enough_satellites_for_dimension(gps_ephemeris, epoch_factory) -> None:
    t, sats, ranges = epoch_factory(gps_ephemeris, system=GPS, n_sats=3)
    geometry = prepare_pr_solution(t, sats, ranges, gps_ephemeris, allowed_gnss=(GPS,))

    result = _solve(geometry)

    assert result.code == ResultCode.NOT_ENOUGH_SATS
    assert result.solution.size == 0


def test_identical_geometry_is_singular() -> None:
    sats = [SatId(GPS, prn) for prn in range(1, 6)]
    svp = np.tile([20_000_000.0, 10_000_000.0, 5_000_000.0, 22_000_000.0], (5, 1))

    result = simple_pr_solution(
        0.0, sats, svp, np.ones(5, dtype=bool), ZeroTropModel(), allowed_gnss=(GPS,)
    )

    assert result.code == ResultCode.SINGULAR


def test_inverse_svd_rejects_rank_deficient_matrix() -> None:
    with pytest.raises(np.linalg.LinAlgError):
        inverse_svd(np.array([[1.0, 1.0], [1.0, 1.0]]))
    matrix = np.array([[4.0, 1.0], [1.0, 3.0]])
    assert np.allclose(inverse_svd(matrix) @ matrix, np.eye(2))


def test_solve_is_pure_and_repeatable(gps_ephemeris, epoch_factory) -> None:
    t, sats, ranges = epoch_factory(gps_ephemeris, system=GPS, noise_sigma_m=1.0, seed=3)
    geometry = prepare_pr_solution(t, sats, ranges, gps_ephemeris, allowed_gnss=(GPS,))
    svp = geometry.svp.copy()
    mask = geometry.included
    mask.flags.writeable = False

    first = simple_pr_solution(t, geometry.sat_ids, geometry.svp, mask, ZeroTropModel(), allowed_gnss=(GPS,))
    second = simple_pr_solution(t, geometry.sat_ids, geometry.svp, mask, ZeroTropModel(), allowed_gnss=(GPS,))

    assert np.array_equal(geometry.svp, svp)
    assert np.array_equal(mask, geometry.included)
    assert np.array_equal(first.solution, second.solution)
    assert np.array_equal(first.residuals, second.residuals)
    assert first.n_iterations == second.n_iterations


def test_uniform_weights_match_unweighted(gps_ephemeris, epoch_factory) -> None:
    t, sats, ranges = epoch_factory(gps_ephemeris, system=GPS, noise_sigma_m=2.0, seed=11)
    geometry = prepare_pr_solution(t, sats, ranges, gps_ephemeris, allowed_gnss=(GPS,))

    plain = _solve(geometry)
    weighted = _solve(geometry, inv_meas_cov=4.0 * np.eye(len(sats)))

    assert weighted.code == ResultCode.OK
    assert np.allclose(weighted.solution, plain.solution, atol=1e-6)
    assert weighted.inv_meas_cov.shape == (len(sats), len(sats))
    assert np.allclose(weighted.covariance, plain.covariance / 4.0)


def test_deweighted_satellite_pulls_less(gps_ephemeris, epoch_factory, receiver_ecef) -> None:
    t, sats, ranges = epoch_factory(gps_ephemeris, system=GPS)
    ranges = ranges.copy()
    ranges[0] += 30.0
    geometry = prepare_pr_solution(t, sats, ranges, gps_ephemeris, allowed_gnss=(GPS,))
    weights = np.eye(len(sats))
    weights[0, 0] = 1e-6

    plain = _solve(geometry)
    weighted = _solve(geometry, inv_meas_cov=weights)

    plain_err = np.linalg.norm(plain.solution[:3] - receiver_ecef)
    weighted_err = np.linalg.norm(weighted.solution[:3] - receiver_ecef)
    assert weighted_err < plain_err


def test_one_clock_per_constellation(multi_ephemeris, epoch_factory, receiver_ecef) -> None:
    t, sats, ranges = epoch_factory(multi_ephemeris)
    assert {sat.system for sat in sats} == {GPS, GAL}
    geometry = prepare_pr_solution(t, sats, ranges, multi_ephemeris, allowed_gnss=(GPS, GAL))

    result = _solve(geometry, allowed_gnss=(GPS, GAL))

    assert result.code == ResultCode.OK
    assert result.systems == (GPS, GAL)
    assert result.solution.shape == (5,)
    assert np.linalg.norm(result.solution[:3] - receiver_ecef) < 1e-4
    assert result.solution[3] == pytest.approx(1000.0, abs=1e-4)
    assert result.solution[4] == pytest.approx(1500.0, abs=1e-4)


def test_clock_order_follows_allowed_gnss(multi_ephemeris, epoch_factory) -> None:
    t, sats, ranges = epoch_factory(multi_ephemeris)
    geometry = prepare_pr_solution(t, sats, ranges, multi_ephemeris, allowed_gnss=(GAL, GPS))

    result = _solve(geometry, allowed_gnss=(GAL, GPS))

    assert result.systems == (GAL, GPS)
    assert result.solution[3] == pytest.approx(1500.0, abs=1e-4)
    assert result.solution[4] == pytest.approx(1000.0, abs=1e-4)


def test_lone_satellite_on_its_clock_has_zero_slope(multi_ephemeris, epoch_factory) -> None:
    t, sats, ranges = epoch_factory(multi_ephemeris)
    gps = [i for i, sat in enumerate(sats) if sat.system is GPS]
    gal = [i for i, sat in enumerate(sats) if sat.system is GAL]
    keep = gps + gal[:1]
    sats = [sats[i] for i in keep]
    ranges = ranges[keep]
    geometry = prepare_pr_solution(t, sats, ranges, multi_ephemeris, allowed_gnss=(GPS, GAL))

    result = _solve(geometry, allowed_gnss=(GPS, GAL))

    assert result.code == ResultCode.OK
    assert result.slopes[-1] == 0.0
    assert np.all(result.slopes[:-1] > 0.0)


def test_disallowed_satellites_are_masked_out(multi_ephemeris, epoch_factory) -> None:
    t, sats, ranges = epoch_factory(multi_ephemeris)
    geometry = prepare_pr_solution(t, sats, ranges, multi_ephemeris, allowed_gnss=(GPS, GAL))
    n_gps = sum(1 for sat in sats if sat.system is GPS)

    result = _solve(geometry, allowed_gnss=(GPS,))

    assert result.systems == (GPS,)
    assert result.nsvs == n_gps
    assert result.solution.shape == (4,)


def test_missing_troposphere_model_raises(gps_ephemeris, epoch_factory) -> None:
    t, sats, ranges = epoch_factory(gps_ephemeris, system=GPS)
    geometry = prepare_pr_solution(t, sats, ranges, gps_ephemeris, allowed_gnss=(GPS,))

    with pytest.raises(ConfigurationError):
        simple_pr_solution(t, geometry.sat_ids, geometry.svp, geometry.included, None, allowed_gnss=(GPS,))


def test_bad_dimensions_raise() -> None:
    sats = [SatId(GPS, prn) for prn in range(1, 5)]
    with pytest.raises(ValueError):
        simple_pr_solution(
            0.0, sats, np.zeros((3, 4)), np.ones(4, dtype=bool), ZeroTropModel(), allowed_gnss=(GPS,)
        )


def test_trop_correction_skips_unreasonable_receivers() -> None:
    trop = SaastamoinenTropModel()
    ground = lla_to_ecef(45.0, 10.0, 100.0)
    overhead = lla_to_ecef(45.0, 10.0, 20_000_000.0)

    delay, applied = trop_correction(trop, ground, overhead, 0.0)
    assert applied
    assert 2.0 < delay < 3.0

    assert trop_correction(trop, lla_to_ecef(45.0, 10.0, 50_000.0), overhead, 0.0) == (0.0, False)
    assert trop_correction(trop, np.zeros(3), overhead, 0.0) == (0.0, False)
    below = lla_to_ecef(-45.0, -170.0, 20_000_000.0)
    assert trop_correction(trop, ground, below, 0.0) == (0.0, False)
