from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, Tuple

MIN_PORT = 1
MAX_PORT = 65535

CONNECT_TIMEOUT_RANGE_MS = (50, 30000)
BANNER_TIMEOUT_RANGE_MS = (100, 30000)
CONCURRENCY_RANGE = (1, 5000)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


@dataclass(frozen=True)
class ScanResult:
    port: int
    latency_ms: float
    service: str = "Unknown"
    banner: str = ""
    protocol: str = "TCP"
    state: str = "Open"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "port": self.port,
            "protocol": self.protocol,
            "state": self.state,
            "service": self.service,
            "banner": self.banner,
            "latencyMs": self.latency_ms,
        }


@dataclass(frozen=True)
class ScanConfig:
    target: str
    start_port: int = 1
    end_port: int = 65535
    connect_timeout_ms: int = 500
    banner_timeout_ms: int = 1500
    concurrency: int = 500

    @property
    def ports_total(self) -> int:
        return self.end_port - self.start_port + 1

    @property
    def connect_timeout_s(self) -> float:
        return self.connect_timeout_ms / 1000.0

    @property
    def banner_timeout_s(self) -> float:
        return self.banner_timeout_ms / 1000.0

    def clamped(self) -> "ScanConfig":
        start = _clamp(self.start_port, MIN_PORT, MAX_PORT)
        return replace(
            self,
            start_port=start,
            end_port=_clamp(self.end_port, start, MAX_PORT),
            connect_timeout_ms=_clamp(self.connect_timeout_ms, *CONNECT_TIMEOUT_RANGE_MS),
            banner_timeout_ms=_clamp(self.banner_timeout_ms, *BANNER_TIMEOUT_RANGE_MS),
            concurrency=_clamp(self.concurrency, *CONCURRENCY_RANGE),
        )


@dataclass(frozen=True)
class ScanReport:
    target: str
    scan_start_utc: str
    scan_end_utc: str
    elapsed_seconds: float
    ports_scanned: int
    open_ports: int
    results: Tuple[ScanResult, ...] = field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        target: str,
        started: datetime,
        ended: datetime,
        elapsed_s: float,
        start_port: int,
        end_port: int,
        results: Iterable[ScanResult],
    ) -> "ScanReport":
        frozen = tuple(results)
        return cls(
            target=target,
            scan_start_utc=started.isoformat(),
            scan_end_utc=ended.isoformat(),
            elapsed_seconds=round(elapsed_s, 2),
            ports_scanned=end_port - start_port + 1,
            open_ports=len(frozen),
            results=frozen,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "scanStartUtc": self.scan_start_utc,
            "scanEndUtc": self.scan_end_utc,
            "elapsedSeconds": self.elapsed_seconds,
            "portsScanned": self.ports_scanned,
            "openPorts": self.open_ports,
            "results": [r.to_dict() for r in self.results],
        }
