# src/wg_bond/topology.py
"""
Configuration derivation.

Turns one peer of a network into the full set of wg-quick settings it
needs: its own [Interface] and one [Peer] entry per peer it should see.
Nothing here mutates the network; any error aborts the whole derivation.
"""
from __future__ import annotations

import logging
from typing import List

from . import flags as peer_flags
from .endpoint import get_port
from .errors import CannotDeriveTemplateInterface, PeerNotFound
from .flags import UseGateway
from .ipop import as_network
from .keys import KeyProvider
from .models import Configuration, Interface, NetworkModel, Peer, PeerRecord
from .templates import unfold_flags

logger = logging.getLogger(__name__)


def map_to_interface(network: NetworkModel, info: PeerRecord) -> Interface:
    if info.is_template():
        raise CannotDeriveTemplateInterface(info.name)

    interface = Interface(
        private_key=info.private_key,
        address=list(info.ips),
        port=get_port(info.endpoint) if info.endpoint else None,
    )
    for flag in info.flags:
        peer_flags.apply_to_interface(flag, network, interface)
    return interface


def map_to_peer(network: NetworkModel, info: PeerRecord, keys: KeyProvider) -> Peer:
    peer = Peer(
        public_key=keys.derive_public_key(info.private_key),
        allowed_ips=[as_network(ip) for ip in info.ips],
        endpoint=info.endpoint,
    )
    for flag in info.flags:
        peer_flags.apply_to_peer(flag, network, peer)
    return peer


def peer_list(network: NetworkModel, info: PeerRecord) -> List[PeerRecord]:
    """
    Peers that appear as [Peer] entries in the configuration of ``info``
    (which must already have its templates unfolded). Returned records
    have their templates unfolded too.
    """
    gateway_flag = info.find_flag(UseGateway.kind)
    if gateway_flag is not None:
        gateway = network.by_id(gateway_flag.peer_id)
        if gateway is None:
            raise PeerNotFound(gateway_flag.peer_id)
        return [unfold_flags(network, gateway)]

    others = [
        unfold_flags(network, p)
        for p in network.real_peers()
        if p.id != info.id
    ]

    if network.is_centralized() and not info.has_flag("Center"):
        return [p for p in others if p.has_flag("Center")]
    return others


def get_configuration(network: NetworkModel, peer: PeerRecord, keys: KeyProvider) -> Configuration:
    info = unfold_flags(network, peer)
    if peer.is_template():
        raise CannotDeriveTemplateInterface(peer.name)

    interface = map_to_interface(network, info)
    others = peer_list(network, info)
    logger.debug(f"Peers of '{peer.name}': {[p.name for p in others]}")

    config = Configuration(
        interface=interface,
        peers=[map_to_peer(network, p, keys) for p in others],
        name=network.name,
    )

    for flag in info.flags:
        peer_flags.apply_to_configuration(flag, network, config)
    return config
