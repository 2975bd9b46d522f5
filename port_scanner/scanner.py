from __future__ import annotations

import socket
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, List, Mapping, Optional, Tuple

from .banner import grab_banner, identify_service, sanitize_banner
from .logger import get_logger, log_event
from .models import ScanConfig, ScanReport, ScanResult

# Progress fires every PROGRESS_EVERY completions, and once at the end
PROGRESS_EVERY = 200

ProgressCallback = Callable[[int, int], None]

logger = get_logger("scanner")


def open_connection(address: Tuple[str, int], timeout: float) -> socket.socket:
    """
    Connects to the first address of ``host`` that answers. Unlike
    socket.create_connection, ``timeout`` is one deadline for every
    resolved address together, not a fresh timeout per address.
    """
    host, port = address
    deadline = time.perf_counter() + timeout
    err: Optional[OSError] = None

    for family, socktype, proto, _, sockaddr in socket.getaddrinfo(host, port, type=socket.SOCK_STREAM):
        remaining = deadline - time.perf_counter()
        if remaining <= 0:
            break
        sock = socket.socket(family, socktype, proto)
        try:
            sock.settimeout(remaining)
            sock.connect(sockaddr)
            return sock
        except OSError as e:
            err = e
            sock.close()

    if err is not None:
        raise err
    raise socket.timeout(f"connect to {host}:{port} timed out")


class Scanner:
    """
    TCP connect scanner for one target and one inclusive port range.

    At most ``config.concurrency`` probes are in flight at once. A permit
    is taken on the dispatching thread before each port is handed to the
    pool, and given back when that probe finishes.
    """

    def __init__(self, config: ScanConfig, services: Mapping[int, str]):
        self.config = config
        self.services = services

    def probe(self, port: int) -> Optional[ScanResult]:
        """
        One connect attempt. Returns None when the port does not answer,
        whatever the reason (refused, timeout, unreachable, ...).
        """
        cfg = self.config
        sock: Optional[socket.socket] = None
        start = time.perf_counter()
        try:
            sock = open_connection((cfg.target, port), cfg.connect_timeout_s)
            latency_ms = (time.perf_counter() - start) * 1000.0

            raw = grab_banner(sock, cfg.target, port, cfg.banner_timeout_s)
            service = identify_service(port, raw, self.services)
            return ScanResult(
                port=port,
                service=service,
                banner=sanitize_banner(raw),
                latency_ms=round(latency_ms, 2),
            )
        except Exception:
            logger.debug("port %s: no result", port)
            return None
        finally:
            if sock is not None:
                try:
                    sock.close()
                except OSError:
                    pass

    def run(self, on_progress: Optional[ProgressCallback] = None) -> List[ScanResult]:
        cfg = self.config
        total = cfg.ports_total

        results: List[ScanResult] = []
        results_lock = threading.Lock()

        scanned = 0
        scanned_lock = threading.Lock()

        gate = threading.BoundedSemaphore(cfg.concurrency)

        def worker(port: int) -> None:
            nonlocal scanned
            try:
                r = self.probe(port)
                if r is not None:
                    with results_lock:
                        results.append(r)
            finally:
                gate.release()
                # Callbacks fire in order; (total, total) is always last
                with scanned_lock:
                    scanned += 1
                    done = scanned
                    if on_progress is not None and (done % PROGRESS_EVERY == 0 or done == total):
                        self._report_progress(on_progress, done, total)

        with ThreadPoolExecutor(max_workers=cfg.concurrency) as pool:
            for port in range(cfg.start_port, cfg.end_port + 1):
                gate.acquire()
                pool.submit(worker, port)

        results.sort(key=lambda r: r.port)
        return results

    @staticmethod
    def _report_progress(on_progress: ProgressCallback, done: int, total: int) -> None:
        try:
            on_progress(done, total)
        except Exception:
            logger.exception("progress callback failed at %s/%s", done, total)

    def report(self, on_progress: Optional[ProgressCallback] = None) -> ScanReport:
        """Runs the scan and freezes the outcome into a ScanReport."""
        cfg = self.config
        log_event(logger, "scan_start", {
            "target": cfg.target,
            "start_port": cfg.start_port,
            "end_port": cfg.end_port,
            "concurrency": cfg.concurrency,
        })

        started = datetime.now(timezone.utc)
        t0 = time.perf_counter()
        results = self.run(on_progress)
        elapsed = time.perf_counter() - t0
        ended = datetime.now(timezone.utc)

        report = ScanReport.build(
            target=cfg.target,
            started=started,
            ended=ended,
            elapsed_s=elapsed,
            start_port=cfg.start_port,
            end_port=cfg.end_port,
            results=results,
        )
        log_event(logger, "scan_complete", {
            "target": cfg.target,
            "ports_scanned": report.ports_scanned,
            "open_ports": report.open_ports,
            "elapsed_s": report.elapsed_seconds,
        })
        return report


def scan(config: ScanConfig, services: Mapping[int, str],
         on_progress: Optional[ProgressCallback] = None) -> List[ScanResult]:
    return Scanner(config, services).run(on_progress)
