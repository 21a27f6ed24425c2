# src/wg_bond/flags.py
"""
Peer flags.

A peer's behaviour is described by a list of flags, at most one of each
kind. While a configuration is derived, every flag gets the chance to
modify the generated interface, each generated peer entry and finally the
whole configuration. Flags are applied front to back, so a later flag can
overwrite what an earlier one did.

The set of kinds is closed: ``FLAG_TYPES`` lists all of them and the
``apply_*`` functions below handle each one explicitly.
"""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Iterable, List, Tuple, Type, Union

from .ipop import IPAddress, IPNetwork
from .models import Configuration, Interface, NetworkModel, Peer


# Public internet without private, loopback and link-local space.
GLOBAL_NET_V4: Tuple[str, ...] = (
    "0.0.0.0/5",
    "8.0.0.0/7",
    "11.0.0.0/8",
    "12.0.0.0/6",
    "16.0.0.0/4",
    "32.0.0.0/3",
    "64.0.0.0/2",
    "128.0.0.0/3",
    "160.0.0.0/5",
    "168.0.0.0/6",
    "172.0.0.0/12",
    "172.32.0.0/11",
    "172.64.0.0/10",
    "172.128.0.0/9",
    "173.0.0.0/8",
    "174.0.0.0/7",
    "176.0.0.0/4",
    "192.0.0.0/9",
    "192.128.0.0/11",
    "192.160.0.0/13",
    "192.169.0.0/16",
    "192.170.0.0/15",
    "192.172.0.0/14",
    "192.176.0.0/12",
    "192.192.0.0/10",
    "193.0.0.0/8",
    "194.0.0.0/7",
    "196.0.0.0/6",
    "200.0.0.0/5",
    "208.0.0.0/4",
)

# TODO: narrow down to 2000::/3 once clients are known to handle it
GLOBAL_NET_V6: Tuple[str, ...] = ("::/0",)


@dataclass(frozen=True)
class ProxyConfig:
    networks: Tuple[IPNetwork, ...] = ()
    use_global_networks: bool = False
    proxy_internet: bool = False


@dataclass(frozen=True)
class Masquerade:
    kind: ClassVar[str] = "Masquerade"
    interface: str


@dataclass(frozen=True)
class Gateway:
    kind: ClassVar[str] = "Gateway"
    ignore_local_networks: bool = True


@dataclass(frozen=True)
class UseGateway:
    kind: ClassVar[str] = "UseGateway"
    peer_id: int
    proxy: ProxyConfig = field(default_factory=ProxyConfig)


@dataclass(frozen=True)
class Segment:
    kind: ClassVar[str] = "Segment"
    mask: int


@dataclass(frozen=True)
class Keepalive:
    kind: ClassVar[str] = "Keepalive"
    seconds: int


@dataclass(frozen=True)
class DNS:
    kind: ClassVar[str] = "DNS"
    addresses: Tuple[IPAddress, ...]


@dataclass(frozen=True)
class NixOpsMachine:
    kind: ClassVar[str] = "NixOpsMachine"


@dataclass(frozen=True)
class Center:
    kind: ClassVar[str] = "Center"


@dataclass(frozen=True)
class Template:
    kind: ClassVar[str] = "Template"


@dataclass(frozen=True)
class UseTemplate:
    kind: ClassVar[str] = "UseTemplate"
    peer_name: str


PeerFlag = Union[
    Masquerade, Gateway, UseGateway, Segment, Keepalive,
    DNS, NixOpsMachine, Center, Template, UseTemplate,
]

FLAG_TYPES: Dict[str, Type] = {
    cls.kind: cls
    for cls in (
        Masquerade, Gateway, UseGateway, Segment, Keepalive,
        DNS, NixOpsMachine, Center, Template, UseTemplate,
    )
}


# ---------- Flag list edits ----------

def dedup_by_kind(flags: Iterable[PeerFlag]) -> List[PeerFlag]:
    """Keep the first flag of every kind, in order."""
    seen = set()
    result = []
    for flag in flags:
        if flag.kind not in seen:
            seen.add(flag.kind)
            result.append(flag)
    return result


def merge_flags(current: List[PeerFlag], new: Iterable[PeerFlag]) -> List[PeerFlag]:
    """New flags go to the front and replace older flags of the same kind."""
    return dedup_by_kind(list(new) + list(current))


def without_kind(flags: Iterable[PeerFlag], kind: str) -> List[PeerFlag]:
    return [f for f in flags if f.kind != kind]


# ---------- Derivation hooks ----------

def _masquerade_rules(network: NetworkModel, if_name: str, action: str) -> str:
    rules = []
    for net in network.networks:
        tool = "iptables" if net.version == 4 else "ip6tables"
        rules.append(f"{tool} {action} POSTROUTING -t nat -j MASQUERADE -s {net} -o {if_name}")
    return ";".join(rules)


def apply_to_interface(flag: PeerFlag, network: NetworkModel, interface: Interface) -> None:
    if isinstance(flag, Masquerade):
        interface.pre_up = _masquerade_rules(network, flag.interface, "-A")
        interface.pre_down = _masquerade_rules(network, flag.interface, "-D")
    elif isinstance(flag, DNS):
        interface.dns = list(flag.addresses)
    elif isinstance(flag, (Gateway, UseGateway, Segment, Keepalive, NixOpsMachine,
                           Center, Template, UseTemplate)):
        pass
    else:
        raise TypeError(f"Unknown peer flag {flag!r}")


def apply_to_peer(flag: PeerFlag, network: NetworkModel, peer: Peer) -> None:
    if isinstance(flag, Gateway):
        if flag.ignore_local_networks:
            if network.has_ipv4():
                peer.allowed_ips.extend(ipaddress.ip_network(n) for n in GLOBAL_NET_V4)
            if network.has_ipv6():
                peer.allowed_ips.extend(ipaddress.ip_network(n) for n in GLOBAL_NET_V6)
        else:
            if network.has_ipv4():
                peer.allowed_ips.insert(0, ipaddress.ip_network("0.0.0.0/0"))
            if network.has_ipv6():
                peer.allowed_ips.insert(0, ipaddress.ip_network("::/0"))
    elif isinstance(flag, Center):
        for net in reversed(network.networks):
            peer.allowed_ips.insert(0, net)
    elif isinstance(flag, (Masquerade, UseGateway, Segment, Keepalive, DNS,
                           NixOpsMachine, Template, UseTemplate)):
        pass
    else:
        raise TypeError(f"Unknown peer flag {flag!r}")


def apply_to_configuration(flag: PeerFlag, network: NetworkModel, config: Configuration) -> None:
    if isinstance(flag, Keepalive):
        for peer in config.peers:
            if peer.endpoint:
                peer.persistent_keepalive = flag.seconds
    elif isinstance(flag, (Masquerade, Gateway, UseGateway, Segment, DNS,
                           NixOpsMachine, Center, Template, UseTemplate)):
        pass
    else:
        raise TypeError(f"Unknown peer flag {flag!r}")
