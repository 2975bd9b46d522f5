from __future__ import annotations

import re
import socket
from typing import Mapping

from .ports import HTTP_PROBE_PORTS

MAX_BANNER_LEN = 256
READ_SIZE = 4096

# Unicode "Cc" control characters, minus CR/LF which become spaces first
_CONTROL = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_NEWLINE = re.compile(r"[\r\n]")


def sanitize_banner(raw: str, max_len: int = MAX_BANNER_LEN) -> str:
    if not raw or raw.isspace():
        return ""
    s = _NEWLINE.sub(" ", raw)
    s = _CONTROL.sub("", s)
    s = s.strip()
    if len(s) > max_len:
        return s[:max_len] + "..."
    return s


def _try_recv(sock: socket.socket, timeout: float, n: int = READ_SIZE) -> bytes:
    sock.settimeout(timeout)
    try:
        return sock.recv(n)
    except OSError:
        return b""


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def http_probe_request(target: str) -> bytes:
    return f"HEAD / HTTP/1.0\r\nHost: {target}\r\nConnection: close\r\n\r\n".encode()


def grab_banner(sock: socket.socket, target: str, port: int, timeout: float) -> str:
    """
    Called only after connect() succeeds. Returns the raw banner text or "".

    1) one read, waiting for services that speak first (SSH/FTP/SMTP/DBs)
    2) web ports only: send HEAD and do one more read
    """
    first = _try_recv(sock, timeout)
    if first:
        return _decode(first)

    if port not in HTTP_PROBE_PORTS:
        return ""

    try:
        sock.settimeout(timeout)
        sock.sendall(http_probe_request(target))
    except OSError:
        return ""

    reply = _try_recv(sock, timeout)
    return _decode(reply) if reply else ""


# (label, substrings) checked in order after the protocol-greeting rules
_PRODUCT_MARKERS = (
    ("MySQL", ("mysql",)),
    ("PostgreSQL", ("postgresql",)),
    ("Redis", ("redis",)),
    ("MongoDB", ("mongo",)),
    ("MSSQL", ("microsoft sql",)),
    ("VNC", ("vnc",)),
    ("TLS/SSL", ("openssl", "tls")),
)


def _any_in(text: str, needles) -> bool:
    return any(n in text for n in needles)


def identify_service(port: int, banner: str, services: Mapping[int, str]) -> str:
    """
    First matching rule wins; order matters more than specificity, so a
    banner that mentions both "server:" and "mysql" is HTTP.
    Falls back to the service table, then "Unknown".
    """
    bl = (banner or "").lower()

    if "ssh-" in bl:
        return "SSH"
    if "220" in bl and _any_in(bl, ("ftp", "filezilla", "vsftpd", "proftpd")):
        return "FTP"
    if "220" in bl and _any_in(bl, ("smtp", "esmtp", "postfix", "sendmail")):
        return "SMTP"
    if "+ok" in bl and "pop" in bl:
        return "POP3"
    if "* ok" in bl and "imap" in bl:
        return "IMAP"
    if bl.startswith("http/") or "server:" in bl or "<html" in bl:
        return "HTTP"

    for label, needles in _PRODUCT_MARKERS:
        if _any_in(bl, needles):
            return label

    return services.get(port, "Unknown")
