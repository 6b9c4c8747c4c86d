"""Scenario runner for multi-epoch RAIM experiments."""

from __future__ import annotations

import csv
import json
import math
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np

from gnss_raim.config import RaimConfig
from gnss_raim.errors import ConfigurationError
from gnss_raim.logger import nav_string, rms_string, save_epochs_csv, save_epochs_npz
from gnss_raim.meas.pseudorange import RangeFault, SyntheticPseudorangeSource
from gnss_raim.meas.troposphere import build_trop_model
from gnss_raim.models import EpochResult, ResultCode, SatelliteSystem, SatId
from gnss_raim.receiver.prsolution import PRSolution
from gnss_raim.sat.simple_gnss import GALILEO_CONFIG, SimpleConstellationConfig, SimpleGnssEphemeris
from gnss_raim.sat.visibility import visible_sats
from gnss_raim.utils.logging import get_logger
from gnss_raim.utils.wgs84 import lla_to_ecef

_LOG = get_logger(f"gnss_raim.{__name__}")

DEFAULT_T0_S = 345_600.0
_KNOWN_KEYS = {
    "name",
    "epochs",
    "dt_s",
    "t0_s",
    "seed",
    "constellations",
    "receiver",
    "clock_bias_m",
    "noise_sigma_m",
    "elevation_mask_deg",
    "trop",
    "faults",
    "raim",
    "tag",
}


def run_scenarios(
    scenario_paths: list[Path],
    *,
    run_root: Path = Path("runs"),
    save_figs: bool = True,
) -> list[dict[str, Any]]:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    summaries: list[dict[str, Any]] = []
    run_root.mkdir(parents=True, exist_ok=True)

    for path in scenario_paths:
        scenario = load_scenario(path)
        run_dir = run_root / f"{timestamp}_{_slugify(str(scenario['name']))}"
        summary = run_scenario(scenario, run_dir, save_figs=save_figs)
        summaries.append(summary)
        _append_summary_csv(run_root / "summary.csv", summary)

    return summaries


def load_scenario(path: Path) -> dict[str, Any]:
    scenario = json.loads(Path(path).read_text())
    missing = {"name", "epochs"} - scenario.keys()
    if missing:
        raise ConfigurationError(f"Scenario {path} missing required keys: {sorted(missing)}")
    unknown = set(scenario) - _KNOWN_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown keys {sorted(unknown)} in scenario '{scenario['name']}'")
    if int(scenario["epochs"]) < 1:
        raise ConfigurationError("Scenario needs at least one epoch")
    return scenario


def build_ephemeris(scenario: dict[str, Any]) -> SimpleGnssEphemeris:
    configs = [_constellation_config(entry) for entry in scenario.get("constellations", ["G"])]
    return SimpleGnssEphemeris(configs, seed=int(scenario.get("seed", 0)))


def _constellation_config(entry: str | dict[str, Any]) -> SimpleConstellationConfig:
    if isinstance(entry, str):
        system = SatelliteSystem.from_code(entry)
        if system is SatelliteSystem.GALILEO:
            return GALILEO_CONFIG
        return SimpleConstellationConfig(system=system)
    values = dict(entry)
    values["system"] = SatelliteSystem.from_code(values.get("system", "G"))
    return SimpleConstellationConfig(**values)


def run_scenario(scenario: dict[str, Any], run_dir: Path, *, save_figs: bool = True) -> dict[str, Any]:
    """Run every epoch of a scenario and write its records, logs, summary and plots."""

    run_dir.mkdir(parents=True, exist_ok=True)
    name = str(scenario["name"])
    tag = str(scenario.get("tag", "RPS"))
    seed = int(scenario.get("seed", 0))
    receiver = scenario.get("receiver", {})
    truth = lla_to_ecef(
        float(receiver.get("lat_deg", 37.4275)),
        float(receiver.get("lon_deg", -122.1697)),
        float(receiver.get("alt_m", 30.0)),
    )
    t0 = float(scenario.get("t0_s", DEFAULT_T0_S))
    dt = float(scenario.get("dt_s", 30.0))

    config = RaimConfig.from_mapping(scenario.get("raim", {}))
    trop_model = build_trop_model(scenario.get("trop", "saastamoinen"))
    ephemeris = build_ephemeris(scenario)
    source = SyntheticPseudorangeSource(
        ephemeris=ephemeris,
        receiver_ecef_m=truth,
        clock_bias_m={
            SatelliteSystem.from_code(code): float(value)
            for code, value in scenario.get("clock_bias_m", {"G": 1000.0}).items()
        },
        trop_model=trop_model,
        noise_sigma_m=float(scenario.get("noise_sigma_m", 0.5)),
        faults=[
            RangeFault(
                sat=SatId.from_string(fault["sat"]),
                bias_m=float(fault["bias_m"]),
                start_t=t0 + float(fault.get("start_s", 0.0)),
                end_t=t0 + float(fault.get("end_s", math.inf)),
            )
            for fault in scenario.get("faults", [])
        ],
        rng=np.random.default_rng(seed),
    )
    solver = PRSolution(config, trop_model)
    mask_deg = float(scenario.get("elevation_mask_deg", 10.0))

    epochs: list[EpochResult] = []
    records = [solver.config_string(f"#{tag} {name}")]
    for k in range(int(scenario["epochs"])):
        t = t0 + k * dt
        sats = visible_sats(ephemeris, truth, t, ephemeris.sat_ids, elevation_mask_deg=mask_deg)
        ranges = source.get_pseudoranges(t, sats)
        result = solver.raim_compute(t, sats, ranges, ephemeris)
        if k == 0:
            records.append(nav_string(result, tag, header=True))
            records.append(rms_string(result, tag, header=True))
        records.append(nav_string(result, tag))
        records.append(rms_string(result, tag))
        epochs.append(result)
        _LOG.debug("epoch %d: %s", k, result.code.description)

    (run_dir / "records.txt").write_text("\n".join(records) + "\n")
    save_epochs_csv(run_dir / "epochs.csv", epochs)
    save_epochs_npz(run_dir / "epochs.npz", epochs)
    if save_figs:
        from gnss_raim.plots import save_run_plots

        save_run_plots(epochs, truth_ecef_m=truth, out_dir=run_dir, run_name="plots")

    summary = {"scenario": name, "run_dir": str(run_dir), **summarize_epochs(epochs, truth)}
    (run_dir / "summary.json").write_text(json.dumps(_sanitize_json(summary), indent=2, allow_nan=False))
    return summary


def summarize_epochs(epochs: list[EpochResult], truth_ecef_m: np.ndarray) -> dict[str, Any]:
    valid = [epoch for epoch in epochs if epoch.valid]
    errors = np.array(
        [float(np.linalg.norm(epoch.position_ecef_m - truth_ecef_m)) for epoch in valid], dtype=float
    )
    rejected = Counter(str(sat) for epoch in epochs for sat in epoch.rejected_sats)
    codes = Counter(int(epoch.code) for epoch in epochs)
    return {
        "epochs": len(epochs),
        "valid_rate": len(valid) / len(epochs) if epochs else float("nan"),
        "degraded_rate": codes.get(int(ResultCode.DEGRADED), 0) / len(epochs) if epochs else float("nan"),
        "codes": {str(code): count for code, count in sorted(codes.items())},
        "pos_err_rms": float(np.sqrt(np.mean(errors**2))) if errors.size else float("nan"),
        "pos_err_max": float(np.max(errors)) if errors.size else float("nan"),
        "rms_residual_mean": _safe_mean([epoch.rms_residual for epoch in valid]),
        "max_slope_max": _safe_max([epoch.max_slope for epoch in valid]),
        "sats_used_mean": _safe_mean([epoch.nsvs for epoch in valid]),
        "rejected_sats": dict(sorted(rejected.items())),
    }


def _safe_mean(values: list[float]) -> float:
    if not values:
        return float("nan")
    return float(np.mean(values))


def _safe_max(values: list[float]) -> float:
    if not values:
        return float("nan")
    return float(np.max(values))


def _sanitize_json(obj: Any) -> Any:
    """Replace NaN/Inf floats with None so JSON is standards-compliant."""

    if isinstance(obj, float):
        return None if (math.isnan(obj) or math.isinf(obj)) else obj
    if isinstance(obj, dict):
        return {k: _sanitize_json(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize_json(v) for v in obj]
    return obj


def _append_summary_csv(path: Path, summary: dict[str, Any]) -> None:
    header = [
        "scenario",
        "run_dir",
        "epochs",
        "valid_rate",
        "degraded_rate",
        "pos_err_rms",
        "pos_err_max",
        "rms_residual_mean",
        "max_slope_max",
        "sats_used_mean",
    ]
    write_header = not path.exists()
    with path.open("a", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=header)
        if write_header:
            writer.writeheader()
        writer.writerow({key: summary.get(key) for key in header})


def _slugify(name: str) -> str:
    return "".join(char if char.isalnum() or char in "-_." else "_" for char in name.lower())
