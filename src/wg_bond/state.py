# src/wg_bond/state.py
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from . import flags as f
from .errors import InvalidAddress, InvalidCIDR, StateError
from .ipop import parse_address, parse_network
from .models import NetworkFlag, NetworkModel, PeerRecord

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path(os.environ.get("WG_BOND_CONFIG", "wg-bond.json"))


# ---------- Flags ----------
# Unit flags are stored as their bare name, the others as {"Kind": {fields}}.

def flag_to_dict(flag: f.PeerFlag) -> Any:
    if isinstance(flag, f.Masquerade):
        body = {"interface": flag.interface}
    elif isinstance(flag, f.Gateway):
        body = {"ignore_local_networks": flag.ignore_local_networks}
    elif isinstance(flag, f.UseGateway):
        body = {
            "peer_id": flag.peer_id,
            "proxy": {
                "networks": [str(n) for n in flag.proxy.networks],
                "use_global_networks": flag.proxy.use_global_networks,
                "proxy_internet": flag.proxy.proxy_internet,
            },
        }
    elif isinstance(flag, f.Segment):
        body = {"mask": flag.mask}
    elif isinstance(flag, f.Keepalive):
        body = {"seconds": flag.seconds}
    elif isinstance(flag, f.DNS):
        body = {"addresses": [str(a) for a in flag.addresses]}
    elif isinstance(flag, f.UseTemplate):
        body = {"peer_name": flag.peer_name}
    elif isinstance(flag, (f.NixOpsMachine, f.Center, f.Template)):
        return flag.kind
    else:
        raise TypeError(f"Unknown peer flag {flag!r}")
    return {flag.kind: body}


def dict_to_flag(data: Any) -> f.PeerFlag:
    if isinstance(data, str):
        kind, body = data, {}
    elif isinstance(data, dict) and len(data) == 1:
        kind, body = next(iter(data.items()))
    else:
        raise StateError(f"Malformed peer flag: {data!r}")

    if kind == "Masquerade":
        return f.Masquerade(interface=body["interface"])
    if kind == "Gateway":
        return f.Gateway(ignore_local_networks=body.get("ignore_local_networks", True))
    if kind == "UseGateway":
        proxy = body.get("proxy", {})
        return f.UseGateway(
            peer_id=int(body["peer_id"]),
            proxy=f.ProxyConfig(
                networks=tuple(parse_network(n) for n in proxy.get("networks", [])),
                use_global_networks=proxy.get("use_global_networks", False),
                proxy_internet=proxy.get("proxy_internet", False),
            ),
        )
    if kind == "Segment":
        return f.Segment(mask=int(body["mask"]))
    if kind == "Keepalive":
        return f.Keepalive(seconds=int(body["seconds"]))
    if kind == "DNS":
        return f.DNS(addresses=tuple(parse_address(a) for a in body["addresses"]))
    if kind == "UseTemplate":
        return f.UseTemplate(peer_name=body["peer_name"])
    if kind in ("NixOpsMachine", "Center", "Template"):
        return f.FLAG_TYPES[kind]()
    raise StateError(f"Unknown peer flag kind '{kind}'")


# ---------- Network ----------

def state_to_dict(network: NetworkModel) -> dict:
    return {
        "name": network.name,
        "networks": [str(n) for n in network.networks],
        "flags": [flag.value for flag in network.flags],
        "ignored_ipv4": [str(n) for n in sorted(network.ignored_ipv4)],
        "ignored_ipv6": [str(n) for n in sorted(network.ignored_ipv6)],
        "peers": [
            {
                "name": p.name,
                "id": p.id,
                "private_key": p.private_key,
                "endpoint": p.endpoint,
                "flags": [flag_to_dict(flag) for flag in p.flags],
                "ips": [str(ip) for ip in p.ips],
            }
            for p in network.peers
        ],
    }


def dict_to_state(data: dict) -> NetworkModel:
    if not isinstance(data, dict):
        raise StateError(f"Cannot deserialize config file, expected an object, got {type(data).__name__}")
    try:
        peers = [
            PeerRecord(
                name=p["name"],
                id=int(p["id"]),
                private_key=p["private_key"],
                endpoint=p.get("endpoint"),
                flags=f.dedup_by_kind(dict_to_flag(flag) for flag in p.get("flags", [])),
                ips=[parse_address(ip) for ip in p.get("ips", [])],
            )
            for p in data.get("peers", [])
        ]
        return NetworkModel(
            name=data["name"],
            networks=[parse_network(n) for n in data["networks"]],
            flags=[NetworkFlag(flag) for flag in data.get("flags", [])],
            ignored_ipv4={parse_network(n) for n in data.get("ignored_ipv4", [])},
            ignored_ipv6={parse_network(n) for n in data.get("ignored_ipv6", [])},
            peers=peers,
        )
    except (KeyError, TypeError, ValueError, AttributeError, InvalidAddress, InvalidCIDR) as e:
        raise StateError(f"Cannot deserialize config file, {e!r}") from e


def load_state(path: Optional[Path] = None) -> NetworkModel:
    path = path or DEFAULT_STATE_PATH
    logger.debug(f"Opening config from {path}")
    if not path.exists():
        raise StateError(f"Config file not found: {path} (run 'init' first)")
    try:
        with path.open("r", encoding="utf-8") as fh:
            data: Dict[str, Any] = json.load(fh)
    except json.JSONDecodeError as e:
        raise StateError(f"Cannot deserialize config file, {e}") from e
    return dict_to_state(data)


def save_state(network: NetworkModel, path: Optional[Path] = None) -> None:
    """Write the network next to ``path`` and rename it into place."""
    path = path or DEFAULT_STATE_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    data = state_to_dict(network)

    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        fh = os.fdopen(fd, "w", encoding="utf-8")
    except BaseException:
        os.close(fd)
        os.unlink(tmp)
        raise

    try:
        with fh:
            json.dump(data, fh, indent=2)
            fh.write("\n")
        # the file holds private keys
        os.chmod(tmp, 0o600)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise
    logger.debug(f"Saved config to {path}")
