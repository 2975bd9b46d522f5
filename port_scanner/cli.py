from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Callable

from . import __version__
from .logger import create_logger
from .models import (
    BANNER_TIMEOUT_RANGE_MS,
    CONCURRENCY_RANGE,
    CONNECT_TIMEOUT_RANGE_MS,
    MAX_PORT,
    MIN_PORT,
    ScanConfig,
)
from .output import ProgressPrinter, print_results, print_summary, save_report
from .ports import load_service_table
from .scanner import Scanner
from .targets import validate_target

DEFAULT_TIMEOUT_MS = 500
DEFAULT_BANNER_TIMEOUT_MS = 1500
DEFAULT_CONCURRENCY = 500

EPILOG = """examples:
  port-scanner 192.168.1.10
  port-scanner scanme.example.com -s 1 -e 1024
  port-scanner 10.0.0.5 -t 1000 -b 2000 -c 200

Results are printed to the terminal and saved as a timestamped JSON
report (scan_<target>_<YYYYmmdd_HHMMSS>.json) in --out-dir."""


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="port-scanner",
        description="TCP connect scanner with banner grabbing and JSON reports",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("target", nargs="?", help="IP address or hostname (omit for interactive mode)")
    p.add_argument("-s", "--start", type=int, default=MIN_PORT, help="Start port (default: 1)")
    p.add_argument("-e", "--end", type=int, default=MAX_PORT, help="End port (default: 65535)")
    p.add_argument("-t", "--timeout", type=int, default=DEFAULT_TIMEOUT_MS,
                   help="Connect timeout in ms (default: 500)")
    p.add_argument("-b", "--banner-timeout", type=int, default=DEFAULT_BANNER_TIMEOUT_MS,
                   help="Banner timeout in ms (default: 1500)")
    p.add_argument("-c", "--concurrency", type=int, default=DEFAULT_CONCURRENCY,
                   help="Max simultaneous connections (default: 500)")
    p.add_argument("--ports-file", help="CSV of port,service names (default: bundled ports.csv)")
    p.add_argument("--out-dir", default=".", help="Directory for the JSON report (default: .)")
    p.add_argument("--no-save", action="store_true", help="Do not write the JSON report")
    p.add_argument("--log-file", help="Also write log events to this file")
    p.add_argument("-v", "--verbose", action="store_true", help="Log per-port debug events to stderr")
    return p


def prompt_int(label: str, default: int, low: int, high: int,
               read: Callable[[str], str] = input) -> int:
    while True:
        raw = read(f"{label} [{default}]: ").strip()
        if not raw:
            return default
        try:
            val = int(raw)
        except ValueError:
            val = None
        if val is not None and low <= val <= high:
            return val
        print(f"  Enter a number between {low} and {high}.")


def prompt_target(read: Callable[[str], str] = input) -> str:
    while True:
        try:
            return validate_target(read("  Target (IP or hostname): "))
        except ValueError:
            print("  Invalid target. Enter a valid IP address or hostname.")


def prompt_config(read: Callable[[str], str] = input) -> ScanConfig:
    target = prompt_target(read)
    start = prompt_int("  Start port        ", MIN_PORT, MIN_PORT, MAX_PORT, read)
    end = prompt_int("  End port          ", MAX_PORT, start, MAX_PORT, read)
    timeout = prompt_int("  Connect timeout ms", DEFAULT_TIMEOUT_MS, CONNECT_TIMEOUT_RANGE_MS[0], 10000, read)
    banner_timeout = prompt_int("  Banner timeout ms ", DEFAULT_BANNER_TIMEOUT_MS, BANNER_TIMEOUT_RANGE_MS[0], 10000, read)
    concurrency = prompt_int("  Concurrency       ", DEFAULT_CONCURRENCY, 1, CONCURRENCY_RANGE[1], read)
    print()
    return ScanConfig(target, start, end, timeout, banner_timeout, concurrency)


def config_from_args(args: argparse.Namespace) -> ScanConfig:
    try:
        target = validate_target(args.target)
    except ValueError as e:
        raise SystemExit(f"Error: {e}") from e
    return ScanConfig(
        target=target,
        start_port=args.start,
        end_port=args.end,
        connect_timeout_ms=args.timeout,
        banner_timeout_ms=args.banner_timeout,
        concurrency=args.concurrency,
    )


def print_header() -> None:
    print()
    print(f"  Port Scanner v{__version__}  |  TCP connect - Banner grab - JSON")
    print()


def print_config(cfg: ScanConfig) -> None:
    print("  -- Configuration ------------------------------------")
    print(f"  Target       : {cfg.target}")
    print(f"  Port Range   : {cfg.start_port} - {cfg.end_port}")
    print(f"  Timeout      : {cfg.connect_timeout_ms} ms (connect) / {cfg.banner_timeout_ms} ms (banner)")
    print(f"  Concurrency  : {cfg.concurrency}")
    print()


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    create_logger(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    if args.target is None:
        if not sys.stdin.isatty():
            parser.print_help()
            return 1
        print_header()
        try:
            cfg = prompt_config()
        except (EOFError, KeyboardInterrupt):
            print()
            print("  Aborted.")
            return 1
    else:
        cfg = config_from_args(args)
        print_header()

    cfg = cfg.clamped()
    print_config(cfg)

    services = load_service_table(args.ports_file)
    report = Scanner(cfg, services).report(on_progress=ProgressPrinter())
    print()
    print()

    print_results(list(report.results))
    print_summary(report)

    if not args.no_save:
        try:
            path = save_report(report, out_dir=args.out_dir)
            print(f"  Report saved -> {os.path.abspath(path)}")
        except OSError as e:
            print(f"  Warning: Could not save report - {e}")

    return 0
