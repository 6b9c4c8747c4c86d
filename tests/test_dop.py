import numpy as np
import pytest

from gnss_raim.integrity.dop import compute_dop
from gnss_raim.utils.wgs84 import lla_to_ecef


def _partials(rng: np.random.Generator, n_sats: int, n_clocks: int = 1) -> np.ndarray:
    los = rng.normal(size=(n_sats, 3))
    los /= np.linalg.norm(los, axis=1, keepdims=True)
    clocks = np.zeros((n_sats, n_clocks))
    clocks[np.arange(n_sats), np.arange(n_sats) % n_clocks] = 1.0
    return np.hstack([los, clocks])


def test_gdop_combines_position_and_time() -> None:
    rng = np.random.default_rng(4)
    dop = compute_dop(_partials(rng, 8))

    assert dop.gdop**2 == pytest.approx(dop.pdop**2 + dop.tdop**2)
    assert dop.gdop >= dop.pdop > 0.0
    assert np.isnan(dop.hdop) and np.isnan(dop.vdop)


def test_horizontal_and_vertical_split_pdop() -> None:
    rng = np.random.default_rng(9)
    position = np.concatenate([lla_to_ecef(45.0, 7.0, 250.0), [10.0]])

    dop = compute_dop(_partials(rng, 9), position)

    assert dop.hdop**2 + dop.vdop**2 == pytest.approx(dop.pdop**2)


def test_tdop_sums_every_clock() -> None:
    rng = np.random.default_rng(2)
    partials = _partials(rng, 10, n_clocks=2)

    dop = compute_dop(partials)

    q = np.linalg.inv(partials.T @ partials)
    assert dop.tdop == pytest.approx(np.sqrt(q[3, 3] + q[4, 4]))


def test_singular_or_short_geometry_is_infinite() -> None:
    rows = np.tile([0.6, 0.8, 0.0, 1.0], (5, 1))
    assert compute_dop(rows).gdop == float("inf")
    assert compute_dop(np.ones((3, 4))).pdop == float("inf")
