"""Integrity monitoring tools."""

from gnss_raim.integrity.dop import compute_dop
from gnss_raim.integrity.memory import AprioriMemory
from gnss_raim.integrity.raim import exclusion_masks, raim_compute, raim_compute_unweighted, raim_solve

__all__ = [
    "AprioriMemory",
    "compute_dop",
    "exclusion_masks",
    "raim_compute",
    "raim_compute_unweighted",
    "raim_solve",
]
