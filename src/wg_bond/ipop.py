# src/wg_bond/ipop.py
"""
Set operations on CIDR blocks.

All functions work on ``ipaddress`` network objects of either family. Blocks
of different families never overlap, so subtracting across families is a
no-op.
"""
from __future__ import annotations

import ipaddress
from typing import Iterable, Optional, Set, Tuple, Union

from .errors import InvalidAddress, InvalidCIDR

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]
IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def parse_network(value: str) -> IPNetwork:
    """Parse 'a.b.c.d/n' or 'x::/n'. Host bits must be clear."""
    try:
        return ipaddress.ip_network(value, strict=True)
    except ValueError as e:
        raise InvalidCIDR(f"Invalid CIDR '{value}': {e}") from e


def parse_address(value: str) -> IPAddress:
    try:
        return ipaddress.ip_address(value)
    except ValueError as e:
        raise InvalidAddress(f"Invalid address '{value}': {e}") from e


def as_network(addr: IPAddress) -> IPNetwork:
    """Single-host block (/32 or /128) for an address."""
    return ipaddress.ip_network(addr)


def first_bits(value: int, n: int, width: int) -> int:
    """Keep the ``n`` most significant bits of a ``width``-bit integer."""
    return value >> (width - n) << (width - n)


def subnets(net: IPNetwork) -> Tuple[IPNetwork, IPNetwork]:
    """Split a block into its two halves one prefix bit longer."""
    if net.prefixlen == net.max_prefixlen:
        raise ValueError(f"Cannot split {net}: already a single address")
    new_prefix = net.prefixlen + 1
    bit = 1 << (net.max_prefixlen - new_prefix)
    base = int(net.network_address)
    cls = type(net)
    return (
        cls((base & ~bit, new_prefix)),
        cls((base | bit, new_prefix)),
    )


def subtract(minuend: IPNetwork, subtrahend: IPNetwork) -> Set[IPNetwork]:
    """Blocks covering every address of ``minuend`` that is not in ``subtrahend``."""
    if minuend.version != subtrahend.version:
        return {minuend}

    width = minuend.max_prefixlen
    min_pref = min(minuend.prefixlen, subtrahend.prefixlen)
    prefs_equal = first_bits(int(minuend.network_address), min_pref, width) == first_bits(
        int(subtrahend.network_address), min_pref, width
    )

    if not prefs_equal:
        return {minuend}
    if subtrahend.prefixlen == min_pref:
        # subtrahend is the same block or a supernet
        return set()

    lower, upper = subnets(minuend)
    return subtract(lower, subtrahend) | subtract(upper, subtrahend)


def subtract_all(minuend: Iterable[IPNetwork], subtrahend: IPNetwork) -> Set[IPNetwork]:
    result: Set[IPNetwork] = set()
    for net in minuend:
        result |= subtract(net, subtrahend)
    return result


def last_address(net: IPNetwork) -> IPAddress:
    return net.broadcast_address


def next_address(addr: IPAddress) -> Optional[IPAddress]:
    """addr + 1, or None past the top of the address space."""
    value = int(addr) + 1
    if value >> addr.max_prefixlen:
        return None
    return type(addr)(value)
