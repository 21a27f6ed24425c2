"""
wg_bond - WireGuard mesh configuration manager.

One JSON file describes the whole network: its address ranges, ignored
ranges and peers with their flags. Everything a single node needs
(wg-quick config, Nix module, QR code) is derived from it on demand.
"""

__version__ = "0.3.0"
