"""
Tests for peer flags and what they do to a derived configuration.
"""

import ipaddress

import pytest

from wg_bond import flags as f
from wg_bond.models import Configuration, Interface, Peer
from wg_bond.wireguard import init_network


def net(value):
    return ipaddress.ip_network(value)


def ip(value):
    return ipaddress.ip_address(value)


class TestFlagSet:
    def test_every_kind_is_registered(self):
        assert set(f.FLAG_TYPES) == {
            "Masquerade", "Gateway", "UseGateway", "Segment", "Keepalive",
            "DNS", "NixOpsMachine", "Center", "Template", "UseTemplate",
        }

    def test_kind_is_not_a_field(self):
        assert f.Center() == f.Center()
        assert f.Keepalive(30) != f.Keepalive(31)

    def test_global_table_is_ordered_and_disjoint(self):
        blocks = [net(n) for n in f.GLOBAL_NET_V4]
        assert blocks == sorted(blocks)
        for a, b in zip(blocks, blocks[1:]):
            assert not a.overlaps(b)
        assert not any(ip("10.1.2.3") in b for b in blocks)
        assert not any(ip("192.168.1.1") in b for b in blocks)
        assert any(ip("1.1.1.1") in b for b in blocks)


class TestMergeFlags:
    def test_new_flag_replaces_same_kind(self):
        merged = f.merge_flags([f.Keepalive(30), f.Center()], [f.Keepalive(100)])
        assert merged == [f.Keepalive(100), f.Center()]

    def test_new_flags_go_first(self):
        merged = f.merge_flags([f.Center()], [f.DNS((ip("1.1.1.1"),))])
        assert [flag.kind for flag in merged] == ["DNS", "Center"]

    def test_dedup_keeps_first(self):
        assert f.dedup_by_kind([f.Segment(1), f.Segment(2), f.Center()]) == [f.Segment(1), f.Center()]

    def test_without_kind(self):
        assert f.without_kind([f.Center(), f.Template()], "Template") == [f.Center()]


class TestInterfaceFlags:
    def test_masquerade_rules_per_network(self):
        network = init_network("n", ["10.0.0.0/24", "fd00::/64"])
        interface = Interface(private_key="k")

        f.apply_to_interface(f.Masquerade("eth0"), network, interface)

        assert interface.pre_up == (
            "iptables -A POSTROUTING -t nat -j MASQUERADE -s 10.0.0.0/24 -o eth0;"
            "ip6tables -A POSTROUTING -t nat -j MASQUERADE -s fd00::/64 -o eth0"
        )
        assert interface.pre_down == (
            "iptables -D POSTROUTING -t nat -j MASQUERADE -s 10.0.0.0/24 -o eth0;"
            "ip6tables -D POSTROUTING -t nat -j MASQUERADE -s fd00::/64 -o eth0"
        )

    def test_dns_overwrites(self, network):
        interface = Interface(private_key="k", dns=[ip("1.1.1.1")])
        f.apply_to_interface(f.DNS((ip("9.9.9.9"), ip("8.8.8.8"))), network, interface)
        assert interface.dns == [ip("9.9.9.9"), ip("8.8.8.8")]

    @pytest.mark.parametrize("flag", [f.Center(), f.Gateway(), f.Keepalive(5), f.Template()])
    def test_other_flags_leave_interface_alone(self, network, flag):
        interface = Interface(private_key="k")
        f.apply_to_interface(flag, network, interface)
        assert interface == Interface(private_key="k")

    def test_unknown_flag(self, network):
        with pytest.raises(TypeError):
            f.apply_to_interface(object(), network, Interface(private_key="k"))


class TestPeerFlags:
    def test_gateway_routes_global_networks(self, network):
        peer = Peer(public_key="p", allowed_ips=[net("10.0.0.1/32")])
        f.apply_to_peer(f.Gateway(ignore_local_networks=True), network, peer)

        assert peer.allowed_ips[0] == net("10.0.0.1/32")
        assert peer.allowed_ips[1:] == [net(n) for n in f.GLOBAL_NET_V4]

    def test_gateway_routes_everything(self):
        network = init_network("n", ["10.0.0.0/24", "fd00::/64"])
        peer = Peer(public_key="p", allowed_ips=[net("10.0.0.1/32")])
        f.apply_to_peer(f.Gateway(ignore_local_networks=False), network, peer)

        assert peer.allowed_ips == [net("::/0"), net("0.0.0.0/0"), net("10.0.0.1/32")]

    def test_gateway_ipv6_only(self):
        network = init_network("n", ["fd00::/64"])
        peer = Peer(public_key="p")
        f.apply_to_peer(f.Gateway(), network, peer)
        assert peer.allowed_ips == [net(n) for n in f.GLOBAL_NET_V6]

    def test_center_routes_whole_networks_first(self):
        network = init_network("n", ["10.0.0.0/24", "fd00::/64"])
        peer = Peer(public_key="p", allowed_ips=[net("10.0.0.1/32"), net("fd00::1/128")])
        f.apply_to_peer(f.Center(), network, peer)

        assert peer.allowed_ips == [
            net("10.0.0.0/24"),
            net("fd00::/64"),
            net("10.0.0.1/32"),
            net("fd00::1/128"),
        ]


class TestConfigurationFlags:
    def test_keepalive_only_for_peers_with_endpoint(self, network):
        config = Configuration(
            interface=Interface(private_key="k"),
            peers=[Peer(public_key="a", endpoint="vpn.example.com:51820"), Peer(public_key="b")],
            name="test",
        )
        f.apply_to_configuration(f.Keepalive(25), network, config)

        assert config.peers[0].persistent_keepalive == 25
        assert config.peers[1].persistent_keepalive is None
