"""
Pytest configuration and shared fixtures
"""

import base64
import sys
from pathlib import Path

import pytest

# Add src to Python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from wg_bond.wireguard import PeerEdit, add_peer, edit_peer, init_network  # noqa: E402


class FakeKeyProvider:
    """Deterministic keys: the n-th private key is 32 bytes of value n."""

    def __init__(self):
        self.generated = 0

    def generate_private_key(self) -> str:
        self.generated += 1
        return base64.b64encode(bytes([self.generated]) * 32).decode("ascii")

    def derive_public_key(self, private_key: str) -> str:
        return "pub-" + private_key[:8]


@pytest.fixture
def keys():
    return FakeKeyProvider()


@pytest.fixture
def network():
    """Empty network on 10.0.0.0/24"""
    return init_network("test", ["10.0.0.0/24"])


@pytest.fixture
def add(network, keys):
    """add("name", dns=[...], ...) -> PeerRecord on the ``network`` fixture"""
    def _add(name, **edit):
        return add_peer(network, name, keys, PeerEdit(**edit))
    return _add


@pytest.fixture
def edit(network):
    def _edit(name, **edit):
        return edit_peer(network, name, PeerEdit(**edit))
    return _edit
