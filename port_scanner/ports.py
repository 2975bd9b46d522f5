from __future__ import annotations

import logging
import os
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .logger import get_logger, log_event
from .models import MAX_PORT, MIN_PORT

DEFAULT_PORTS_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "ports.csv")

# Web ports that only answer after an HTTP request
HTTP_PROBE_PORTS = frozenset({80, 443, 8080, 8443, 8888})

logger = get_logger("ports")


def parse_service_line(raw: str) -> Optional[Tuple[int, str]]:
    """
    Parses one "port,name" line of the service table.
    Returns (port, name), or None for blanks, comments and malformed lines.
    """
    line = raw.strip()
    if not line or line.startswith("#"):
        return None

    comma = line.find(",")
    if comma < 1:
        return None

    try:
        port = int(line[:comma])
    except ValueError:
        return None
    if port < MIN_PORT or port > MAX_PORT:
        return None

    return port, line[comma + 1:]


def load_service_table(path: Optional[str] = None) -> Mapping[int, str]:
    """
    Loads the editable port -> service name table.

    A missing file gives an empty table, as does one we cannot read.
    The result is read-only so probe threads can share it freely.
    """
    path = path or DEFAULT_PORTS_FILE
    table: Dict[int, str] = {}

    if not os.path.isfile(path):
        return MappingProxyType(table)

    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw in f:
                entry = parse_service_line(raw)
                if entry:
                    port, name = entry
                    table[port] = name
    except (OSError, UnicodeDecodeError) as e:
        log_event(logger, "service_table_unreadable", {"path": path, "message": str(e)}, level=logging.WARNING)
        return MappingProxyType({})

    return MappingProxyType(table)
