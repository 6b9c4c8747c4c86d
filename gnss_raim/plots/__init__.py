"""Plotting utilities for RAIM run outputs."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib
import numpy as np

from gnss_raim.models import EpochResult

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt  # noqa: E402


def save_run_plots(
    epochs: list[EpochResult],
    *,
    truth_ecef_m: Sequence[float] | None = None,
    out_dir: str | Path = "out",
    run_name: str | None = None,
) -> Path:
    """Save standard run plots to an output directory."""

    output_dir = _prepare_output_dir(out_dir, run_name)
    times = np.array([epoch.t for epoch in epochs], dtype=float)
    if truth_ecef_m is not None:
        truth = np.asarray(truth_ecef_m, dtype=float)
        errors = np.array([_position_error(epoch, truth) for epoch in epochs], dtype=float)
        _plot_series(times, errors, output_dir / "position_error.png", "Position Error vs Time", "Position error (m)", "tab:blue")
    rms = np.array([epoch.rms_residual for epoch in epochs], dtype=float)
    _plot_series(times, rms, output_dir / "residual_rms.png", "Residual RMS vs Time", "Residual RMS (m)", "tab:green")
    slope = np.array([epoch.max_slope for epoch in epochs], dtype=float)
    _plot_series(times, slope, output_dir / "raim_slope.png", "RAIM Slope vs Time", "Max slope", "tab:orange")
    _plot_dop(times, epochs, output_dir / "dop.png")
    _plot_sv_used(times, epochs, output_dir / "satellites_used.png")
    _plot_result_code(times, epochs, output_dir / "result_code.png")
    return output_dir


def _prepare_output_dir(out_dir: str | Path, run_name: str | None) -> Path:
    root = Path(out_dir)
    output_dir = root if run_name is None else root / run_name
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def _position_error(epoch: EpochResult, truth: np.ndarray) -> float:
    if not epoch.valid or not np.isfinite(epoch.position_ecef_m).all():
        return float("nan")
    return float(np.linalg.norm(epoch.position_ecef_m - truth))


def _plot_series(times: np.ndarray, values: np.ndarray, path: Path, title: str, ylabel: str, color: str) -> None:
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.plot(times, values, marker="o", markersize=3, color=color)
    ax.set_title(title)
    ax.set_xlabel("Time (s)")
    ax.set_ylabel(ylabel)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_dop(times: np.ndarray, epochs: list[EpochResult], path: Path) -> None:
    dop = np.array(
        [[epoch.dop.gdop, epoch.dop.pdop, epoch.dop.hdop, epoch.dop.vdop] for epoch in epochs],
        dtype=float,
    ).reshape(-1, 4)
    dop[~np.isfinite(dop)] = np.nan
    fig, ax = plt.subplots(figsize=(9, 4))
    labels = ["GDOP", "PDOP", "HDOP", "VDOP"]
    colors = ["tab:blue", "tab:orange", "tab:green", "tab:red"]
    for idx, label in enumerate(labels):
        ax.plot(times, dop[:, idx], marker="o", markersize=3, label=label, color=colors[idx])
    ax.set_title("DOP vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("DOP")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_sv_used(times: np.ndarray, epochs: list[EpochResult], path: Path) -> None:
    used = np.array([epoch.nsvs for epoch in epochs], dtype=float)
    rejected = np.array([epoch.n_rejected for epoch in epochs], dtype=float)
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.step(times, used, where="post", label="Used", color="tab:purple")
    ax.step(times, rejected, where="post", label="Rejected by RAIM", color="tab:red")
    ax.set_title("Satellites Used vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Satellites")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_result_code(times: np.ndarray, epochs: list[EpochResult], path: Path) -> None:
    codes = np.array([int(epoch.code) for epoch in epochs], dtype=float)
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.step(times, codes, where="post", color="tab:gray")
    ax.set_title("Result Code vs Time")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("Code")
    ax.set_yticks([-4.0, -3.0, -2.0, -1.0, 0.0, 1.0])
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
