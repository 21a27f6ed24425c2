"""
Tests for the persisted network file.
"""

import ipaddress
import json
import os
import stat

import pytest

from wg_bond import flags as f
from wg_bond import state
from wg_bond.errors import StateError
from wg_bond.ipam import ignore
from wg_bond.state import dict_to_flag, dict_to_state, flag_to_dict, load_state, save_state, state_to_dict
from wg_bond.wireguard import add_peer, init_network


ALL_FLAGS = [
    f.Masquerade("eth0"),
    f.Gateway(ignore_local_networks=False),
    f.UseGateway(peer_id=3, proxy=f.ProxyConfig(
        networks=(ipaddress.ip_network("192.168.0.0/16"),),
        use_global_networks=True,
    )),
    f.Segment(mask=24),
    f.Keepalive(25),
    f.DNS((ipaddress.ip_address("9.9.9.9"), ipaddress.ip_address("2620:fe::fe"))),
    f.NixOpsMachine(),
    f.Center(),
    f.Template(),
    f.UseTemplate("base"),
]


class TestFlagEncoding:
    @pytest.mark.parametrize("flag", ALL_FLAGS, ids=lambda fl: fl.kind)
    def test_round_trip(self, flag):
        assert dict_to_flag(json.loads(json.dumps(flag_to_dict(flag)))) == flag

    def test_unit_flag_is_a_string(self):
        assert flag_to_dict(f.Center()) == "Center"

    def test_tagged_flag(self):
        assert flag_to_dict(f.Keepalive(30)) == {"Keepalive": {"seconds": 30}}

    def test_gateway_default(self):
        assert dict_to_flag({"Gateway": {}}) == f.Gateway(ignore_local_networks=True)

    @pytest.mark.parametrize("data", ["Bogus", {"Bogus": {}}, {"Center": {}, "Template": {}}, 42])
    def test_malformed(self, data):
        with pytest.raises(StateError):
            dict_to_flag(data)


class TestNetworkEncoding:
    def test_round_trip(self, network, add):
        ignore(network, ipaddress.ip_network("10.0.0.128/25"))
        add("base", template=True, dns=["9.9.9.9"])
        add("a", use_template="base", endpoint="a.example.com:51820", keepalive=25)

        restored = dict_to_state(json.loads(json.dumps(state_to_dict(network))))

        assert restored == network

    def test_dual_stack_round_trip(self, keys):
        network = init_network("dual", ["10.0.0.0/24", "fd00::/64"], centralized=True)
        ignore(network, ipaddress.ip_network("fd00::/120"))
        add_peer(network, "a", keys)

        assert dict_to_state(state_to_dict(network)) == network

    def test_missing_field(self):
        with pytest.raises(StateError):
            dict_to_state({"networks": ["10.0.0.0/24"]})

    def test_bad_address(self):
        with pytest.raises(StateError):
            dict_to_state({"name": "n", "networks": ["10.0.0.0/33"]})

    @pytest.mark.parametrize("data", [[], "home", 42, None])
    def test_top_level_not_an_object(self, data):
        with pytest.raises(StateError, match="expected an object"):
            dict_to_state(data)

    def test_peer_not_an_object(self):
        with pytest.raises(StateError):
            dict_to_state({"name": "n", "networks": ["10.0.0.0/24"], "peers": [["a"]]})


class TestFiles:
    def test_save_and_load(self, tmp_path, network, add):
        add("a", center=True)
        path = tmp_path / "wg-bond.json"

        save_state(network, path)

        assert load_state(path) == network

    def test_file_is_private(self, tmp_path, network):
        path = tmp_path / "wg-bond.json"
        save_state(network, path)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_no_temp_files_left(self, tmp_path, network):
        path = tmp_path / "wg-bond.json"
        save_state(network, path)
        save_state(network, path)
        assert [p.name for p in tmp_path.iterdir()] == ["wg-bond.json"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(StateError, match="not found"):
            load_state(tmp_path / "nope.json")

    def test_json_list_file(self, tmp_path):
        path = tmp_path / "wg-bond.json"
        path.write_text("[1, 2]")
        with pytest.raises(StateError):
            load_state(path)

    def test_temp_file_closed_when_open_fails(self, tmp_path, network, monkeypatch):
        """
        Given the temporary file cannot be wrapped for writing
        When the network is saved
        Then the descriptor is closed and no temporary file is left behind
        """
        opened = []
        real_mkstemp = state.tempfile.mkstemp

        def recording_mkstemp(*args, **kwargs):
            fd, name = real_mkstemp(*args, **kwargs)
            opened.append(fd)
            return fd, name

        def failing_fdopen(*args, **kwargs):
            raise OSError("cannot open")

        monkeypatch.setattr(state.tempfile, "mkstemp", recording_mkstemp)
        monkeypatch.setattr(state.os, "fdopen", failing_fdopen)

        with pytest.raises(OSError, match="cannot open"):
            save_state(network, tmp_path / "wg-bond.json")

        monkeypatch.undo()
        with pytest.raises(OSError):
            os.fstat(opened[0])
        assert list(tmp_path.iterdir()) == []

    def test_broken_json(self, tmp_path):
        path = tmp_path / "wg-bond.json"
        path.write_text("{not json")
        with pytest.raises(StateError):
            load_state(path)
