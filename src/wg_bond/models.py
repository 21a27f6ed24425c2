# src/wg_bond/models.py
from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Set

from .ipop import IPAddress, IPNetwork

if TYPE_CHECKING:
    from .flags import PeerFlag


class NetworkFlag(Enum):
    CENTRALIZED = "Centralized"


@dataclass
class PeerRecord:
    name: str                      # unique, used on the command line and by templates
    id: int                        # max existing + 1, never reused
    private_key: str               # base64 X25519 secret
    endpoint: Optional[str] = None # "host:port"
    flags: List["PeerFlag"] = field(default_factory=list)
    ips: List[IPAddress] = field(default_factory=list)  # one per declared network

    def has_flag(self, kind: str) -> bool:
        return any(f.kind == kind for f in self.flags)

    def find_flag(self, kind: str) -> Optional["PeerFlag"]:
        return next((f for f in self.flags if f.kind == kind), None)

    def is_template(self) -> bool:
        return self.has_flag("Template")

    def clone(self) -> "PeerRecord":
        # flags are frozen dataclasses, sharing them is fine
        return PeerRecord(
            name=self.name,
            id=self.id,
            private_key=self.private_key,
            endpoint=self.endpoint,
            flags=list(self.flags),
            ips=list(self.ips),
        )


@dataclass
class NetworkModel:
    name: str
    networks: List[IPNetwork]
    flags: List[NetworkFlag] = field(default_factory=list)
    # non-overlapping, no entry is a subnet of another
    ignored_ipv4: Set[ipaddress.IPv4Network] = field(default_factory=set)
    ignored_ipv6: Set[ipaddress.IPv6Network] = field(default_factory=set)
    peers: List[PeerRecord] = field(default_factory=list)

    def by_name(self, name: str) -> Optional[PeerRecord]:
        return next((p for p in self.peers if p.name == name), None)

    def by_id(self, peer_id: int) -> Optional[PeerRecord]:
        return next((p for p in self.peers if p.id == peer_id), None)

    def real_peers(self) -> List[PeerRecord]:
        return [p for p in self.peers if not p.is_template()]

    def has_flag(self, flag: NetworkFlag) -> bool:
        return flag in self.flags

    def is_centralized(self) -> bool:
        return self.has_flag(NetworkFlag.CENTRALIZED)

    def has_ipv4(self) -> bool:
        return any(n.version == 4 for n in self.networks)

    def has_ipv6(self) -> bool:
        return any(n.version == 6 for n in self.networks)

    def assigned_addresses(self) -> Set[IPAddress]:
        return {ip for p in self.peers for ip in p.ips}

    def ignored(self, version: int) -> Set[IPNetwork]:
        return self.ignored_ipv4 if version == 4 else self.ignored_ipv6

    def set_ignored(self, version: int, nets: Set[IPNetwork]) -> None:
        if version == 4:
            self.ignored_ipv4 = set(nets)
        else:
            self.ignored_ipv6 = set(nets)

    def next_id(self) -> int:
        return max((p.id for p in self.peers), default=0) + 1

    def clone(self) -> "NetworkModel":
        return NetworkModel(
            name=self.name,
            networks=list(self.networks),
            flags=list(self.flags),
            ignored_ipv4=set(self.ignored_ipv4),
            ignored_ipv6=set(self.ignored_ipv6),
            peers=[p.clone() for p in self.peers],
        )


# ---------- Derived, never persisted ----------

@dataclass
class Interface:
    """[Interface] section of a wg-quick config."""
    private_key: str
    address: List[IPAddress] = field(default_factory=list)
    port: Optional[int] = None
    dns: List[IPAddress] = field(default_factory=list)
    fw_mark: Optional[int] = None
    table: Optional[str] = None
    pre_up: Optional[str] = None
    post_up: Optional[str] = None
    pre_down: Optional[str] = None
    post_down: Optional[str] = None


@dataclass
class Peer:
    """[Peer] section of a wg-quick config."""
    public_key: str
    allowed_ips: List[IPNetwork] = field(default_factory=list)
    endpoint: Optional[str] = None
    persistent_keepalive: Optional[int] = None
    preshared_key: Optional[str] = None


@dataclass
class Configuration:
    interface: Interface
    peers: List[Peer]
    name: str                      # network name, also the interface name
