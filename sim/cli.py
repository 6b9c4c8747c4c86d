"""Command line entrypoint for headless RAIM scenario runs."""

from __future__ import annotations

import argparse
from pathlib import Path

from gnss_raim.utils.logging import set_level


def _cmd_scenario(args: argparse.Namespace) -> None:
    from sim.scenario_runner import run_scenarios

    scenarios = [Path(p) for p in (args.scenario or [])]
    if not scenarios:
        raise SystemExit("No scenarios provided. Use --scenario path.json (repeatable).")

    summaries = run_scenarios(
        scenarios,
        run_root=Path(args.run_root),
        save_figs=not args.no_plots,
    )
    for summary in summaries:
        print(f"{summary['scenario']}: valid {summary['valid_rate']:.2f} -> {summary['run_dir']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gnss-raim", description="Pseudorange positioning with RAIM")
    parser.add_argument("--debug", action="store_true", help="Log solver and RAIM internals")
    sub = parser.add_subparsers(dest="cmd", required=True)

    scen = sub.add_parser("scenario", help="Run one or more JSON scenarios (headless)")
    scen.add_argument("--scenario", action="append", help="Path to a scenario JSON file (repeatable)")
    scen.add_argument("--run-root", type=str, default="runs", help="Root folder for scenario outputs")
    scen.add_argument("--no-plots", action="store_true", help="Skip saving plot PNGs")
    scen.set_defaults(func=_cmd_scenario)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.debug:
        set_level("DEBUG")
    args.func(args)


if __name__ == "__main__":
    main()
