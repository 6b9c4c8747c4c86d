"""Measurement models."""

from gnss_raim.meas.pseudorange import RangeFault, SyntheticPseudorangeSource, geometric_range_m
from gnss_raim.meas.troposphere import (
    SaastamoinenTropModel,
    ZeroTropModel,
    build_trop_model,
    saastamoinen_delay_m,
    standard_atmosphere,
)

__all__ = [
    "RangeFault",
    "SaastamoinenTropModel",
    "SyntheticPseudorangeSource",
    "ZeroTropModel",
    "build_trop_model",
    "geometric_range_m",
    "saastamoinen_delay_m",
    "standard_atmosphere",
]
