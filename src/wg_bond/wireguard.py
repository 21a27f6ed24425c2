# src/wg_bond/wireguard.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from . import flags as f
from .endpoint import check_endpoint
from .errors import DuplicatePeerName, GatewayNotFound, PeerNotFound, TemplateInUse
from .ipam import allocate_addresses
from .ipop import parse_address, parse_network
from .keys import KeyProvider
from .models import Configuration, NetworkFlag, NetworkModel, PeerRecord
from .topology import get_configuration as derive_configuration

logger = logging.getLogger(__name__)


# ---------- Network ----------

def init_network(
    name: str,
    networks: Sequence[str] = ("10.0.0.0/24",),
    centralized: bool = False,
) -> NetworkModel:
    net = NetworkModel(
        name=name,
        networks=[parse_network(n) for n in networks],
        flags=[NetworkFlag.CENTRALIZED] if centralized else [],
    )
    logger.info(f"Initialized network '{name}' on {', '.join(map(str, net.networks))}")
    return net


# ---------- Peers ----------

@dataclass
class PeerEdit:
    """Changes requested by `add` / `edit`. None or False means 'leave as is'."""
    endpoint: Optional[str] = None
    dns: Optional[List[str]] = None
    masquerade: Optional[str] = None
    center: bool = False
    gateway: bool = False
    nixops: bool = False
    keepalive: Optional[int] = None
    template: bool = False
    use_template: Optional[str] = None
    use_gateway: Optional[str] = None
    segment: Optional[int] = None


def _edit_flags(network: NetworkModel, edit: PeerEdit) -> List[f.PeerFlag]:
    """Flags for an edit, most recently inserted first."""
    new: List[f.PeerFlag] = []

    def insert(flag):
        new.insert(0, flag)

    if edit.dns is not None:
        insert(f.DNS(addresses=tuple(parse_address(a) for a in edit.dns)))
    if edit.masquerade is not None:
        insert(f.Masquerade(interface=edit.masquerade))
    if edit.center:
        insert(f.Center())
    if edit.gateway:
        insert(f.Gateway(ignore_local_networks=True))
    if edit.nixops:
        insert(f.NixOpsMachine())
    if edit.keepalive is not None:
        if not 0 <= edit.keepalive <= 65535:
            raise ValueError(f"Keepalive out of range: {edit.keepalive}")
        insert(f.Keepalive(seconds=edit.keepalive))
    if edit.template:
        insert(f.Template())
    if edit.use_template is not None:
        if network.by_name(edit.use_template) is None:
            raise PeerNotFound(edit.use_template)
        insert(f.UseTemplate(peer_name=edit.use_template))
    if edit.use_gateway is not None:
        gateway = network.by_name(edit.use_gateway)
        if gateway is None:
            raise GatewayNotFound(f"No gateway found by name '{edit.use_gateway}'")
        insert(f.UseGateway(peer_id=gateway.id))
    if edit.segment is not None:
        insert(f.Segment(mask=edit.segment))
    return new


def _apply_edit(network: NetworkModel, peer: PeerRecord, edit: PeerEdit) -> None:
    # validate everything before touching the peer
    endpoint = check_endpoint(edit.endpoint) if edit.endpoint is not None else peer.endpoint
    new_flags = _edit_flags(network, edit)

    peer.endpoint = endpoint
    peer.flags = f.merge_flags(peer.flags, new_flags)


def add_peer(
    network: NetworkModel,
    name: str,
    keys: KeyProvider,
    edit: Optional[PeerEdit] = None,
) -> PeerRecord:
    if network.by_name(name) is not None:
        raise DuplicatePeerName(name)

    ips = allocate_addresses(network)
    peer = PeerRecord(
        name=name,
        id=network.next_id(),
        private_key=keys.generate_private_key(),
        ips=ips,
    )
    _apply_edit(network, peer, edit or PeerEdit())

    network.peers.append(peer)
    logger.info(f"Peer '{name}' added as #{peer.id} with {', '.join(map(str, ips))}")
    return peer


def edit_peer(network: NetworkModel, name: str, edit: PeerEdit) -> PeerRecord:
    peer = network.by_name(name)
    if peer is None:
        raise PeerNotFound(name)

    _apply_edit(network, peer, edit)
    logger.info(f"Peer '{name}' edited, flags: {[fl.kind for fl in peer.flags]}")
    return peer


def remove_peer(network: NetworkModel, name: str) -> PeerRecord:
    peer = network.by_name(name)
    if peer is None:
        raise PeerNotFound(name)

    users = [
        p.name for p in network.peers
        if any(isinstance(fl, f.UseTemplate) and fl.peer_name == name for fl in p.flags)
        and p.id != peer.id
    ]
    if users:
        raise TemplateInUse(name, users)

    network.peers.remove(peer)
    # addresses stay taken, allocation only moves upwards
    logger.info(f"Peer '{name}' removed")
    return peer


# ---------- Export ----------

def tunnel_view(network: NetworkModel, peer_name: str, gateway_name: Optional[str] = None) -> NetworkModel:
    """Copy of the network reduced to a gateway and one peer (plus templates)."""
    peer = network.by_name(peer_name)
    if peer is None:
        raise PeerNotFound(peer_name)

    if gateway_name:
        gateway = network.by_name(gateway_name)
        if gateway is None:
            raise GatewayNotFound("No gateway found by given name")
    else:
        gateway = next((p for p in network.peers if p.has_flag(f.Gateway.kind)), None)
        if gateway is None:
            raise GatewayNotFound("No gateways found in your config.")

    view = network.clone()
    templates = [
        p.clone() for p in network.peers
        if p.is_template() and p.id not in (gateway.id, peer.id)
    ]
    view.peers = [gateway.clone(), peer.clone()] + templates
    return view


def get_configuration(network: NetworkModel, peer_name: str, keys: KeyProvider) -> Configuration:
    peer = network.by_name(peer_name)
    if peer is None:
        raise PeerNotFound(peer_name)
    return derive_configuration(network, peer, keys)
