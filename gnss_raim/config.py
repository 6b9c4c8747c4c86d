"""Configuration objects for the RAIM pseudorange solver."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from gnss_raim.errors import ConfigurationError
from gnss_raim.models import SatelliteSystem

MEMORY_MODES = ("replace", "exponential")


@dataclass(frozen=True)
class RaimConfig:
    """Solver and RAIM configuration defaults."""

    allowed_gnss: tuple[SatelliteSystem, ...] = (SatelliteSystem.GPS,)
    max_iterations: int = 10
    convergence_limit: float = 3.0e-7
    rms_limit: float = 6.5
    slope_limit: float = 1000.0
    n_sats_reject: int = -1
    has_memory: bool = False
    memory_mode: str = "replace"
    memory_alpha: float = 0.5

    def validate(self) -> RaimConfig:
        """Raise ConfigurationError for values the solver cannot run with."""

        if not self.allowed_gnss:
            raise ConfigurationError("Must define allowed_gnss before processing")
        if len(set(self.allowed_gnss)) != len(self.allowed_gnss):
            raise ConfigurationError("allowed_gnss contains duplicate systems")
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")
        if self.convergence_limit <= 0.0:
            raise ConfigurationError("convergence_limit must be positive")
        if self.rms_limit <= 0.0:
            raise ConfigurationError("rms_limit must be positive")
        if self.slope_limit <= 0.0:
            raise ConfigurationError("slope_limit must be positive")
        if self.n_sats_reject < -1:
            raise ConfigurationError("n_sats_reject must be -1 (unbounded) or >= 0")
        if self.memory_mode not in MEMORY_MODES:
            raise ConfigurationError(f"memory_mode must be one of {MEMORY_MODES}")
        if not 0.0 < self.memory_alpha <= 1.0:
            raise ConfigurationError("memory_alpha must be in (0, 1]")
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RaimConfig:
        """Build a config from JSON-like data; systems may be letters or names."""

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        values = dict(data)
        if "allowed_gnss" in values:
            try:
                values["allowed_gnss"] = tuple(
                    SatelliteSystem.from_code(code) for code in values["allowed_gnss"]
                )
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc
        return cls(**values).validate()

    def to_mapping(self) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["allowed_gnss"] = [system.value for system in self.allowed_gnss]
        return data


def load_config(path: str | Path) -> RaimConfig:
    """Load a RaimConfig from a JSON file."""

    return RaimConfig.from_mapping(json.loads(Path(path).read_text()))
