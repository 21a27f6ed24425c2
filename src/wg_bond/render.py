# src/wg_bond/render.py
from __future__ import annotations

import io
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

import qrcode

from .keys import KeyProvider
from .models import Configuration, NetworkModel, Peer
from .topology import get_configuration

logger = logging.getLogger(__name__)

NIXOPS_SECRETS_PREFIX = "/secrets"


def key_file_name(network_name: str) -> str:
    return f"wg-{network_name}.ed25519.base64"


# ---------- wg-quick ----------

def _param(lines: List[str], name: str, value) -> None:
    if value is not None:
        lines.append(f"{name} = {value}")


def _param_list(lines: List[str], name: str, values: Iterable) -> None:
    values = [str(v) for v in values]
    if values:
        lines.append(f"{name} = {', '.join(values)}")


def render_conf(config: Configuration) -> str:
    i = config.interface
    lines = [
        "[Interface]",
        f"PrivateKey = {i.private_key}",
    ]
    _param_list(lines, "Address", i.address)
    _param_list(lines, "DNS", i.dns)
    _param(lines, "ListenPort", i.port)
    _param(lines, "FwMark", i.fw_mark)
    _param(lines, "Table", i.table)
    _param(lines, "PreUp", i.pre_up)
    _param(lines, "PreDown", i.pre_down)
    _param(lines, "PostUp", i.post_up)
    _param(lines, "PostDown", i.post_down)

    for p in config.peers:
        lines += ["", "[Peer]", f"PublicKey = {p.public_key}"]
        _param(lines, "PresharedKey", p.preshared_key)
        _param(lines, "Endpoint", p.endpoint)
        _param(lines, "PersistentKeepalive", p.persistent_keepalive)
        _param_list(lines, "AllowedIPs", p.allowed_ips)

    return "\n".join(lines).strip() + "\n"


# ---------- Nix ----------

def _nix_str(value) -> str:
    return '"' + str(value).replace("\\", "\\\\").replace('"', '\\"') + '"'


def _nix_list(values: Iterable) -> str:
    return "[" + " ".join(_nix_str(v) for v in values) + "]"


def _nix_peer(peer: Peer) -> str:
    parts = [
        f"publicKey={_nix_str(peer.public_key)};",
        f"allowedIPs={_nix_list(peer.allowed_ips)};",
    ]
    if peer.persistent_keepalive is not None:
        parts.append(f"persistentKeepalive={peer.persistent_keepalive};")
    if peer.preshared_key is not None:
        parts.append(f"presharedKey={_nix_str(peer.preshared_key)};")
    if peer.endpoint is not None:
        parts.append(f"endpoint={_nix_str(peer.endpoint)};")
    return "{" + "".join(parts) + "}"


def render_nix(config: Configuration, use_keyfile: Optional[str] = None) -> str:
    """
    NixOS ``networking.wg-quick.interfaces`` entry for one peer.

    With ``use_keyfile`` set to a directory the private key is referenced
    from there instead of being written into the (world readable) store.
    """
    i = config.interface
    parts = [f"networking.wg-quick.interfaces.{_nix_str(config.name)}={{"]

    if use_keyfile:
        parts.append(f"privateKeyFile={_nix_str(use_keyfile + '/' + key_file_name(config.name))};")
    else:
        parts.append(f"privateKey={_nix_str(i.private_key)};")

    if i.port is not None:
        parts.append(f"listenPort={i.port};")
    parts.append(f"address={_nix_list(i.address)};")
    if i.dns:
        parts.append(f"dns={_nix_list(i.dns)};")
    for key, value in (
        ("preUp", i.pre_up),
        ("preDown", i.pre_down),
        ("postUp", i.post_up),
        ("postDown", i.post_down),
    ):
        if value is not None:
            parts.append(f"{key}={_nix_str(value)};")

    parts.append("peers=[" + " ".join(_nix_peer(p) for p in config.peers) + "];")
    parts.append("};")
    return "".join(parts)


def render_nixops(network: NetworkModel, keys: KeyProvider) -> str:
    """Attribute set of NixOps machines, one per peer flagged NixOpsMachine."""
    parts = ["{"]
    for peer in network.real_peers():
        if not peer.has_flag("NixOpsMachine"):
            continue
        config = get_configuration(network, peer, keys)
        parts.append(f"{_nix_str(peer.name)}.{render_nix(config, NIXOPS_SECRETS_PREFIX)}")
    parts.append("}")
    return "".join(parts) + "\n"


# ---------- QR ----------

def render_qr(text: str) -> str:
    """QR code of ``text`` drawn with block characters for a terminal."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(text)
    qr.make(fit=True)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


def save_qr_png(text: str, path: Path) -> Path:
    img = qrcode.make(text)
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(str(path))
    return path


# ---------- /etc/hosts ----------

def render_hosts(network: NetworkModel) -> str:
    lines = []
    for peer in network.real_peers():
        for ip in peer.ips:
            lines.append(f"{ip}\t{peer.name}.{network.name}")
    return "\n".join(lines) + "\n"


# ---------- Secrets ----------

def export_secrets(network: NetworkModel, target: Path) -> List[Path]:
    """Write every private key to <target>/<peer>/wg-<network>.ed25519.base64 (0600)."""
    written = []
    for peer in network.peers:
        path = target / peer.name / key_file_name(network.name)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        try:
            os.write(fd, peer.private_key.encode("utf-8"))
        finally:
            os.close(fd)
        os.chmod(path, 0o600)

        logger.info(f"Wrote secret of '{peer.name}' to {path}")
        written.append(path)
    return written
