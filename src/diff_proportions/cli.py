from __future__ import annotations

import argparse
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from diff_proportions.config import DEFAULT_INCREMENT, DEFAULT_SHARE_DIGITS, ConfigError
from diff_proportions.engine import ProportionError
from diff_proportions.models import ConvergenceResult, ItemSettings, ProportionSettings, StepRecord
from diff_proportions.paths import resolve_scenario_path
from diff_proportions.service import build_engine, process_scenario, run_convergence
from diff_proportions.utils import round_digits


def main() -> int:
    parser = _build_arg_parser()
    args = parser.parse_args()

    share_digits = DEFAULT_SHARE_DIGITS
    try:
        if args.target_sum is not None:
            settings = _inline_settings(parser, args)
            log_path = None if args.log_stdout else args.log
            result = run_convergence(build_engine(settings), log_path=log_path)
        else:
            config_path = resolve_scenario_path(args.config, Path.cwd())
            if not config_path.exists():
                parser.error(
                    f"Scenario config not found at '{config_path}'. "
                    "Provide --config, inline --target-sum/--share values, "
                    "or create proportion.yml or proportion.yaml in the working directory."
                )
            run = process_scenario(config_path, log_to_stdout=args.log_stdout, log_path=args.log)
            share_digits = run.config.app.share_digits
            result = run.result
    except (ConfigError, ProportionError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    _print_steps(result, share_digits)
    print(
        f"{result.status}: steps={result.step_count} "
        f"current_sum={result.final_sum} target_sum={result.target_sum}"
    )
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diff-proportions",
        description="Step current values toward a target percentage profile, one increment at a time.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML scenario. Default: auto-detect proportion.yml or proportion.yaml in working directory.",
    )
    parser.add_argument(
        "--log",
        type=Path,
        default=None,
        help="Append-only JSON event log path. Default: app.log_path from the scenario, none for inline runs.",
    )
    parser.add_argument("--log-stdout", action="store_true", help="Print log events to stdout instead of a file.")
    parser.add_argument("--target-sum", type=_decimal_arg, default=None, help="Inline target sum in natural units.")
    parser.add_argument(
        "--increment",
        type=_decimal_arg,
        default=DEFAULT_INCREMENT,
        help="Inline step applied to one item per iteration. Negative values converge downward.",
    )
    parser.add_argument(
        "--share",
        type=_decimal_arg,
        action="append",
        default=[],
        help="Inline target percentage share; repeat once per item.",
    )
    parser.add_argument(
        "--current",
        type=_decimal_arg,
        action="append",
        default=[],
        help="Inline starting value; repeat once per item in the same order as --share.",
    )
    return parser


def _decimal_arg(value: str) -> Decimal:
    try:
        parsed = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"'{value}' is not a number.") from exc
    if not parsed.is_finite():
        raise argparse.ArgumentTypeError(f"'{value}' is not a finite number.")
    return parsed


def _inline_settings(parser: argparse.ArgumentParser, args: argparse.Namespace) -> ProportionSettings:
    if args.config is not None:
        parser.error("Use either --config or inline --target-sum values, not both.")
    if args.current and len(args.current) != len(args.share):
        parser.error(
            f"--current was given {len(args.current)} times but --share {len(args.share)} times."
        )

    currents = args.current or [None] * len(args.share)
    return ProportionSettings(
        target_sum=args.target_sum,
        increment=args.increment,
        items=[ItemSettings(target_share=share, current_value=current) for share, current in zip(args.share, currents)],
    )


def _print_steps(result: ConvergenceResult, share_digits: int) -> None:
    for record in result.steps:
        print(format_step(record, share_digits))


def format_step(record: StepRecord, share_digits: int = DEFAULT_SHARE_DIGITS) -> str:
    values = " : ".join(str(value) for value in record.current_values)
    shares = " : ".join(str(round_digits(share, share_digits)) for share in record.current_shares)
    upcoming = "done" if record.next_item_key is None else f"next item {record.next_item_key}"
    return f"{values} -- {shares} -- {upcoming}"


if __name__ == "__main__":
    raise SystemExit(main())
