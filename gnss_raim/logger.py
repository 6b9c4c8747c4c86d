"""Formatted solution records and epoch log files.

Records are single lines keyed by a caller-chosen tag::

    RPS NAV 2200 345600.000  -2694045.123456 ... GPS     123.456 (0 ok) V
    RPS RMS 2200 345600.000  8    1.234    1.10    1.80    2.11   12.3  3 1.23e-08 G01 -G05 ... (0 ok) V

Passing ``header=True`` returns the matching ``#tag ...`` column header.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import numpy as np

from gnss_raim.config import RaimConfig
from gnss_raim.models import EpochResult, ResultCode

SECONDS_PER_WEEK = 604_800.0

EPOCH_CSV_COLUMNS = [
    "t",
    "week",
    "sow",
    "code",
    "valid",
    "nsvs",
    "n_rejected",
    "stage",
    "rms_residual_m",
    "max_slope",
    "gdop",
    "pdop",
    "tdop",
    "hdop",
    "vdop",
    "pos_ecef_x",
    "pos_ecef_y",
    "pos_ecef_z",
    "clocks_m",
    "n_iterations",
    "convergence",
    "trop_flag",
    "slope_flag",
    "rms_flag",
    "rejected_sats",
]
_CSV_HEADER = ",".join(EPOCH_CSV_COLUMNS) + "\n"


def format_gps_time(t: float) -> str:
    """Render GPS seconds as ``week seconds-of-week``."""

    week = int(t // SECONDS_PER_WEEK)
    sow = t - week * SECONDS_PER_WEEK
    return f"{week:4d} {sow:10.3f}"


def error_code_string(code: int) -> str:
    try:
        return ResultCode(code).description
    except ValueError:
        return "unknown"


def valid_string(result: EpochResult) -> str:
    """Return `` (code description [due to ...]) V`` or ``NV`` for not valid."""

    text = f" ({int(result.code)} {error_code_string(result.code)}"
    if result.code == ResultCode.DEGRADED:
        text += " due to"
        if result.rms_flag:
            text += " large RMS residual"
        if result.slope_flag:
            text += " large slope"
        if result.trop_flag:
            text += " missed trop. corr."
    return text + ") " + ("" if result.valid else "N") + "V"


def _time_width(result: EpochResult, trim: int = 0) -> int:
    width = len(format_gps_time(result.t))
    return width - trim if width > trim else width


def _clock_fields(result: EpochResult) -> str:
    return "".join(
        f" {system.label} {result.solution[3 + i]:11.3f}" for i, system in enumerate(result.systems)
    )


def nav_string(
    result: EpochResult,
    tag: str,
    *,
    header: bool = False,
    vec: Sequence[float] | None = None,
) -> str:
    """Position (or ``vec``, e.g. a residual vector) plus every system clock."""

    if header:
        return (
            f"#{tag} NAV {'time':>{_time_width(result)}}"
            f" {'Sol/Resid:X(m)':>18} {'Sol/Resid:Y(m)':>18} {'Sol/Resid:Z(m)':>18}"
            f" {'sys clock':>18} [sys clock ...]   Valid/Not"
        )
    xyz = result.solution[:3] if vec is None else np.asarray(vec, dtype=float)[:3]
    return (
        f"{tag} NAV {format_gps_time(result.t)}"
        + "".join(f" {value:16.6f}" for value in xyz)
        + _clock_fields(result)
        + valid_string(result)
    )


def pos_string(
    result: EpochResult,
    tag: str,
    *,
    header: bool = False,
    vec: Sequence[float] | None = None,
) -> str:
    if header:
        return (
            f"#{tag} POS {'time':>{_time_width(result, 3)}}"
            f" {'Sol-X(m)':>16} {'Sol-Y(m)':>16} {'Sol-Z(m)':>16} (ret code) Valid/Not"
        )
    xyz = result.solution[:3] if vec is None else np.asarray(vec, dtype=float)[:3]
    return (
        f"{tag} POS {format_gps_time(result.t)}"
        + "".join(f" {value:16.6f}" for value in xyz)
        + valid_string(result)
    )


def clk_string(result: EpochResult, tag: str, *, header: bool = False) -> str:
    if header:
        return f"#{tag} CLK {'time':>{_time_width(result, 3)}} sys {'clock':>11} ..."
    return f"{tag} CLK {format_gps_time(result.t)}" + _clock_fields(result) + valid_string(result)


def rms_string(result: EpochResult, tag: str, *, header: bool = False) -> str:
    """Satellite count, RMS residual, DOPs, slope, iterations, convergence and the
    satellite list with rejected satellites prefixed by ``-``."""

    if header:
        return (
            f"#{tag} RMS {'time':>{_time_width(result, 3)}}"
            f" Ngood {'resid':>8} {'TDOP':>7} {'PDOP':>7} {'GDOP':>7} Slope nit {'converge':>8}"
            " sats(-rej)... (ret code) Valid/Not"
        )
    seen: list[str] = []
    good: set[str] = set()
    for sat, status in zip(result.sat_ids, result.status):
        name = str(sat)
        if name not in seen:
            seen.append(name)
        if status.included:
            good.add(name)
    sats = "".join(f" {name}" if name in good else f" -{name}" for name in seen)
    dop = result.dop
    return (
        f"{tag} RMS {format_gps_time(result.t)}"
        f" {len(good):2d} {result.rms_residual:8.3f}"
        f" {dop.tdop:7.2f} {dop.pdop:7.2f} {dop.gdop:7.2f}"
        f" {result.max_slope:5.1f} {result.n_iterations:2d} {result.convergence:8.2e}"
        + sats
        + valid_string(result)
    )


def output_string(
    result: EpochResult,
    tag: str,
    *,
    header: bool = False,
    vec: Sequence[float] | None = None,
) -> str:
    """NAV and RMS records, newline separated."""

    return nav_string(result, tag, header=header, vec=vec) + "\n" + rms_string(result, tag, header=header)


def config_string(config: RaimConfig, tag: str, memory: Any | None = None) -> str:
    has_memory = memory is not None or config.has_memory
    return (
        f"{tag}"
        f"\n   systems {' '.join(system.label for system in config.allowed_gnss)}"
        f"\n   iterations {config.max_iterations}"
        f"\n   convergence {config.convergence_limit:.2e}"
        f"\n   RMS residual limit {config.rms_limit:.6f}"
        f"\n   RAIM slope limit {config.slope_limit:.6f} meters"
        f"\n   Maximum number of satellites to reject is {config.n_sats_reject}"
        f"\n   Memory information IS {'' if has_memory else 'NOT '}stored"
    )


def epoch_to_record(result: EpochResult) -> dict[str, Any]:
    """Flatten an epoch result into plain values keyed by EPOCH_CSV_COLUMNS."""

    week = int(result.t // SECONDS_PER_WEEK)
    pos = result.solution[:3] if result.solution.size >= 3 else np.full(3, np.nan)
    return {
        "t": result.t,
        "week": week,
        "sow": result.t - week * SECONDS_PER_WEEK,
        "code": int(result.code),
        "valid": result.valid,
        "nsvs": result.nsvs,
        "n_rejected": result.n_rejected,
        "stage": result.stage,
        "rms_residual_m": result.rms_residual,
        "max_slope": result.max_slope,
        "gdop": result.dop.gdop,
        "pdop": result.dop.pdop,
        "tdop": result.dop.tdop,
        "hdop": result.dop.hdop,
        "vdop": result.dop.vdop,
        "pos_ecef_x": float(pos[0]),
        "pos_ecef_y": float(pos[1]),
        "pos_ecef_z": float(pos[2]),
        "clocks_m": "|".join(
            f"{system.value}:{result.solution[3 + i]:.3f}" for i, system in enumerate(result.systems)
        ),
        "n_iterations": result.n_iterations,
        "convergence": result.convergence,
        "trop_flag": result.trop_flag,
        "slope_flag": result.slope_flag,
        "rms_flag": result.rms_flag,
        "rejected_sats": "|".join(str(sat) for sat in result.rejected_sats),
    }


def append_epoch_csv(path: str | Path, epoch: EpochResult) -> None:
    """Append a single epoch summary to a CSV file."""

    target = Path(path)
    if not target.exists():
        target.write_text(_CSV_HEADER)
    with target.open("a", encoding="utf-8") as handle:
        handle.write(_record_to_csv_line(epoch_to_record(epoch)))


def save_epochs_csv(path: str | Path, epochs: list[EpochResult]) -> None:
    """Save all epoch summaries to a CSV file."""

    target = Path(path)
    target.write_text(_CSV_HEADER)
    with target.open("a", encoding="utf-8") as handle:
        for epoch in epochs:
            handle.write(_record_to_csv_line(epoch_to_record(epoch)))


def save_epochs_npz(path: str | Path, epochs: list[EpochResult]) -> None:
    """Save epoch records to a compressed NPZ file."""

    payload = [epoch_to_record(epoch) for epoch in epochs]
    np.savez_compressed(path, epochs=np.array(payload, dtype=object))


def load_epochs_npz(path: str | Path) -> list[dict]:
    """Load epoch records from a compressed NPZ file."""

    data = np.load(path, allow_pickle=True)
    return list(data["epochs"].tolist())


def _record_to_csv_line(record: dict[str, Any]) -> str:
    return ",".join(_format_value(record[column]) for column in EPOCH_CSV_COLUMNS) + "\n"


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bool, np.bool_)):
        return "1" if value else "0"
    return str(value)
