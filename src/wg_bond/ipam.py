# src/wg_bond/ipam.py
from __future__ import annotations

import logging
from typing import Iterable, List, Set

from .errors import AssignedAddressInIgnoreRange, NoFreeAddress
from .ipop import IPAddress, IPNetwork, last_address, next_address, subtract_all
from .models import NetworkModel

logger = logging.getLogger(__name__)


def allocate_free_address(
    network_cidr: IPNetwork,
    assigned: Iterable[IPAddress],
    ignored: Iterable[IPNetwork],
) -> IPAddress:
    """
    Next free address in ``network_cidr``, strictly above every address
    already assigned in it. Addresses given back by removed peers are
    never handed out again.
    """
    in_net = [ip for ip in assigned if ip.version == network_cidr.version and ip in network_cidr]
    start = max(in_net, default=network_cidr.network_address)

    ignored = sorted(n for n in ignored if n.version == network_cidr.version)

    ip = next_address(start)
    while ip is not None:
        block = next((n for n in ignored if ip in n), None)
        if block is None:
            break
        # ignored blocks never nest, so this only moves upwards
        ip = next_address(last_address(block))

    if ip is None or ip not in network_cidr:
        raise NoFreeAddress(network_cidr)
    return ip


def allocate_addresses(network: NetworkModel) -> List[IPAddress]:
    """One fresh address per declared network, or NoFreeAddress for the lot."""
    assigned: Set[IPAddress] = network.assigned_addresses()
    result: List[IPAddress] = []
    for net in network.networks:
        ip = allocate_free_address(net, assigned, network.ignored(net.version))
        assigned.add(ip)
        result.append(ip)
    return result


def ignore(network: NetworkModel, subnet: IPNetwork) -> bool:
    """
    Exclude ``subnet`` from allocation.

    Returns False when an already ignored block covers it.
    """
    for ip in sorted(network.assigned_addresses(), key=lambda a: (a.version, a)):
        if ip in subnet:
            raise AssignedAddressInIgnoreRange(subnet, ip)

    ignored = network.ignored(subnet.version)
    if any(subnet.subnet_of(n) for n in ignored):
        logger.info(f"{subnet} is already ignored")
        return False

    kept = {n for n in ignored if not n.subnet_of(subnet)}
    dropped = len(ignored) - len(kept)
    kept.add(subnet)
    network.set_ignored(subnet.version, kept)

    logger.info(f"Ignoring {subnet} (replaced {dropped} narrower range(s))")
    return True


def unignore(network: NetworkModel, subnet: IPNetwork) -> None:
    """Make every address of ``subnet`` allocatable again."""
    before = network.ignored(subnet.version)
    after = subtract_all(before, subnet)
    network.set_ignored(subnet.version, after)
    logger.info(f"Unignored {subnet}: {len(before)} -> {len(after)} ignored range(s)")
