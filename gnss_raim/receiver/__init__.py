"""Receiver algorithms."""

from gnss_raim.receiver.prepare import prepare_pr_solution
from gnss_raim.receiver.solver import inverse_svd, simple_pr_solution, systems_in_use

__all__ = ["inverse_svd", "prepare_pr_solution", "simple_pr_solution", "systems_in_use"]
