from __future__ import annotations

import ipaddress
import re

_HOST_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def is_hostname(name: str) -> bool:
    if not name or len(name) > 253:
        return False
    if name.endswith("."):
        name = name[:-1]
    return all(_HOST_LABEL.match(label) for label in name.split("."))


def validate_target(target: str) -> str:
    """
    Supports:
      - IPv4 / IPv6 literal: "172.20.0.10", "::1"
      - Hostname: "webapp", "scanme.example.com"
    Resolution is left to the connect call.
    """
    target = (target or "").strip()
    if not target:
        raise ValueError("Empty target")

    try:
        return str(ipaddress.ip_address(target))
    except ValueError:
        pass

    if is_hostname(target):
        return target

    raise ValueError(f"'{target}' is not a valid IP address or hostname")
