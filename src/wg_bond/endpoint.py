# src/wg_bond/endpoint.py
from __future__ import annotations

import ipaddress
import re
from typing import Tuple

from .errors import InvalidEndpoint

_DOMAIN_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


def _check_host(host: str) -> str:
    if not host:
        raise InvalidEndpoint("empty host")
    if host.startswith("[") and host.endswith("]"):
        try:
            ipaddress.IPv6Address(host[1:-1])
        except ValueError:
            raise InvalidEndpoint("invalid IPv6 address")
        return host
    if not _DOMAIN_RE.match(host):
        raise InvalidEndpoint("invalid domain character")
    return host


def split_endpoint(address: str) -> Tuple[str, int]:
    """
    'host:port' -> (host, port). IPv6 hosts need brackets: '[fd00::1]:51820'.

    >>> split_endpoint("test:8080")
    ('test', 8080)
    """
    parts = address.rsplit(":", 1)
    if len(parts) == 1:
        raise InvalidEndpoint("You forgot the port.")

    host = _check_host(parts[0])
    try:
        port = int(parts[1])
    except ValueError:
        raise InvalidEndpoint("Port number is weird.")
    if not parts[1].isdigit() or port > 65535:
        raise InvalidEndpoint("Port number is weird.")
    return host, port


def get_port(address: str) -> int:
    return split_endpoint(address)[1]


def check_endpoint(address: str) -> str:
    split_endpoint(address)
    return address
