# src/wg_bond/keys.py
from __future__ import annotations

import base64
import binascii
import logging
import subprocess
from typing import List, Protocol

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from .errors import InvalidKeyMaterial

logger = logging.getLogger(__name__)


class KeyProvider(Protocol):
    def generate_private_key(self) -> str:
        ...

    def derive_public_key(self, private_key: str) -> str:
        ...


def _decode_private_key(private_key: str) -> bytes:
    try:
        raw = base64.b64decode(private_key, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidKeyMaterial("Cannot decode base64")
    if len(raw) != 32:
        raise InvalidKeyMaterial(f"Expected key size of 32, got {len(raw)}")
    return raw


class X25519KeyProvider:
    """Keys computed in-process, no wireguard-tools needed."""

    def generate_private_key(self) -> str:
        key = X25519PrivateKey.generate()
        raw = key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return base64.b64encode(raw).decode("ascii")

    def derive_public_key(self, private_key: str) -> str:
        key = X25519PrivateKey.from_private_bytes(_decode_private_key(private_key))
        raw = key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return base64.b64encode(raw).decode("ascii")


# ---------- wg(8) ----------

def _run(cmd: List[str], stdin: str | None = None) -> str:
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        out = subprocess.run(cmd, input=stdin, capture_output=True, text=True, check=True)
    except FileNotFoundError:
        raise InvalidKeyMaterial(f"'{cmd[0]}' not found, install wireguard-tools or use --keys x25519")
    except subprocess.CalledProcessError as e:
        raise InvalidKeyMaterial(e.stderr.strip() or f"{' '.join(cmd)} failed")
    return out.stdout.strip()


class WgToolKeyProvider:
    """Delegates to `wg genkey` / `wg pubkey`."""

    def generate_private_key(self) -> str:
        return _run(["wg", "genkey"])

    def derive_public_key(self, private_key: str) -> str:
        _decode_private_key(private_key)
        # pubkey reads the private key on stdin
        return _run(["wg", "pubkey"], stdin=private_key + "\n")


KEY_PROVIDERS = {
    "x25519": X25519KeyProvider,
    "wg": WgToolKeyProvider,
}


def get_key_provider(name: str = "x25519") -> KeyProvider:
    try:
        return KEY_PROVIDERS[name]()
    except KeyError:
        raise ValueError(f"Unknown key provider '{name}'")
