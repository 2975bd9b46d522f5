from __future__ import annotations

import json
import os
import re
import threading
from datetime import datetime
from typing import List, Optional, TextIO

from .models import ScanReport, ScanResult

BANNER_DISPLAY_LEN = 60

_UNSAFE_FILENAME = re.compile(r"[^a-zA-Z0-9\-_]")


def _short_banner(banner: str) -> str:
    if len(banner) > BANNER_DISPLAY_LEN:
        return banner[:BANNER_DISPLAY_LEN] + "..."
    return banner


def format_row(r: ScanResult) -> str:
    latency = f"{r.latency_ms} ms"
    return f"  {r.port:<10}{r.state:<10}{r.service:<20}{latency:<12}{_short_banner(r.banner)}"


def print_results(results: List[ScanResult], out: Optional[TextIO] = None) -> None:
    if not results:
        print("  No open ports found.", file=out)
        return

    print(f"  {'PORT':<10}{'STATE':<10}{'SERVICE':<20}{'LATENCY':<12}BANNER", file=out)
    print("  " + "-" * 90, file=out)
    for r in results:
        print(format_row(r), file=out)


def print_summary(report: ScanReport, out: Optional[TextIO] = None) -> None:
    print(file=out)
    print("  -- Summary ------------------------------------------", file=out)
    print(
        f"  Completed in {report.elapsed_seconds:.2f}s - "
        f"{report.ports_scanned} ports scanned, {report.open_ports} open",
        file=out,
    )


def report_filename(target: str, started: datetime) -> str:
    safe = _UNSAFE_FILENAME.sub("_", target)
    return f"scan_{safe}_{started.strftime('%Y%m%d_%H%M%S')}.json"


def save_report(report: ScanReport, out_dir: str = ".") -> str:
    os.makedirs(out_dir, exist_ok=True)
    started = datetime.fromisoformat(report.scan_start_utc)
    path = os.path.join(out_dir, report_filename(report.target, started))

    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)

    return path


class ProgressPrinter:
    """
    (done, total) callback that redraws one status line.
    Probe threads call it concurrently, so writes are serialized.
    """

    def __init__(self, out: Optional[TextIO] = None):
        self.out = out
        self._lock = threading.Lock()

    def __call__(self, done: int, total: int) -> None:
        pct = done / total * 100 if total else 100.0
        with self._lock:
            print(f"\r  Scanning [{done}/{total}] {pct:6.1f}%   ", end="", file=self.out, flush=True)
