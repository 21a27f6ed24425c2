# src/wg_bond/templates.py
"""
Template inheritance.

A peer flagged ``UseTemplate{name}`` inherits every flag of the named peer,
which may itself use further templates. The dependency graph is rebuilt
for every resolution; networks hold tens of peers, not thousands.
"""
from __future__ import annotations

import logging
from typing import List

import networkx as nx

from .errors import PeerNotFound, TemplateCycle
from .flags import PeerFlag, Template, UseTemplate, without_kind
from .models import NetworkModel, PeerRecord

logger = logging.getLogger(__name__)


def build_template_graph(network: NetworkModel, peer: PeerRecord | None = None) -> nx.DiGraph:
    """One node per peer id, one edge from each peer to every template it uses directly."""
    peers = list(network.peers)
    if peer is not None and network.by_id(peer.id) is None:
        peers.append(peer)

    graph = nx.DiGraph()
    graph.add_nodes_from(p.id for p in peers)
    for p in peers:
        for flag in p.flags:
            if isinstance(flag, UseTemplate):
                template = network.by_name(flag.peer_name)
                if template is None:
                    raise PeerNotFound(flag.peer_name)
                graph.add_edge(p.id, template.id)
    return graph


def collect_templates(network: NetworkModel, peer: PeerRecord) -> List[int]:
    """Ids of every template ``peer`` depends on, nearest first."""
    graph = build_template_graph(network, peer)
    if not nx.is_directed_acyclic_graph(graph):
        raise TemplateCycle()

    # preorder, first listed template first
    templates = [t for t in nx.dfs_preorder_nodes(graph, peer.id) if t != peer.id]
    logger.debug(f"Templates of '{peer.name}': {templates}")
    return templates


def _keep_last_by_kind(flags: List[PeerFlag]) -> List[PeerFlag]:
    last = {f.kind: i for i, f in enumerate(flags)}
    return [f for i, f in enumerate(flags) if last[f.kind] == i]


def unfold_flags(network: NetworkModel, peer: PeerRecord) -> PeerRecord:
    """
    Copy of ``peer`` with the flags of all its templates merged in.

    Each template's flags are put in front of what was collected so far,
    so the peer's own flags end up last, preceded by its nearest template.
    Of several flags of one kind the last one is kept. ``UseTemplate``
    flags are dropped, and the ``Template`` marker is never inherited.
    The stored network is left untouched.
    """
    templates = collect_templates(network, peer)
    info = peer.clone()
    if not templates:
        return info

    flags = list(info.flags)
    for template_id in templates:
        template = network.by_id(template_id)
        flags = without_kind(template.flags, Template.kind) + flags

    info.flags = _keep_last_by_kind(without_kind(flags, UseTemplate.kind))
    return info
